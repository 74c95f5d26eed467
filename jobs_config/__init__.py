"""
jobs_config -- Typed YAML configuration for the job engine.

Public API:
    load_engine_config(path) -> EngineConfig
"""

from jobs_config.loader import (
    compute_checksum,
    load_engine_config,
    load_yaml_file,
    parse_engine_settings,
    parse_job_definition,
)
from jobs_config.schema import EngineConfig, EngineSettings, JobDefinitionDef

__all__ = [
    "EngineConfig",
    "EngineSettings",
    "JobDefinitionDef",
    "compute_checksum",
    "load_engine_config",
    "load_yaml_file",
    "parse_engine_settings",
    "parse_job_definition",
]
