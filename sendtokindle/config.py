"""Pydantic models with basic validations"""

from pydantic import BaseModel, field_validator, ConfigDict, model_validator, ValidationInfo
from pathlib import Path
from typing import Optional, Dict, Any, Union
import yaml
from dotenv import main
import os
import re

from .pipeline import (
    BuilderConfig as BuilderConfig_,
    DelivererConfig as DelivererConfig_,
)

CONFIG_NAME = ".sendtokindle.yaml"
ENV_PREFIX = "SENDTOKINDLE_"

def default_config_path() -> Path:
    return Path.home() / CONFIG_NAME

class MessageConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    from_header: str="Send To Kindle <sendtokindle@localhost>"
    subject: str="For kindle"
    message_id_domain: str="localhost"

    def to_pipeline_config(self) -> 'BuilderConfig_':
        return BuilderConfig_(
            from_header=self.from_header,
            subject=self.subject,
            message_id_domain=self.message_id_domain
        )

class DelivererConfig(BaseModel):
    model_config = ConfigDict(extra='forbid')

    helo_name: str="localhost"
    sender: str="sendtokindle@localhost"
    port: int=25
    timeout: float=10.0

    @field_validator('port')
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (1 <= v <= 65535):
            raise ValueError("Port must be an integer between 1 and 65535.")
        return v

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeout must be a positive number of seconds.")
        return v

    @field_validator('sender')
    @classmethod
    def validate_sender(cls, v: str) -> str:
        if not re.match(r"^[^@\s]+@[^@\s]+$", v):
            raise ValueError("Sender address format is invalid.")
        return v

    @field_validator('helo_name')
    @classmethod
    def validate_helo_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("helo_name cannot be empty.")
        return v

    def to_pipeline_config(self) -> 'DelivererConfig_':
        return DelivererConfig_(
            helo_name=self.helo_name,
            sender=self.sender,
            port=self.port,
            timeout=self.timeout
        )

class MainConfig(BaseModel):
    model_config = ConfigDict(extra='forbid') # prevent unknown fields

    message: MessageConfig=MessageConfig()
    deliver: DelivererConfig=DelivererConfig()
    log_file: Optional[str]=None
    """Every section is optional; missing ones go with default settings."""

    @model_validator(mode="before")
    @classmethod
    def resolve_references(cls, data: Any, info: ValidationInfo) -> Any:
        environ = (info.context or {}).get("environ")
        if isinstance(data, dict):
            return cls._resolve_references(data, environ)
        return data

    @classmethod
    def from_yaml(cls, path: Union[str, Path], environ: Optional[Dict[str, str]]=None) -> 'MainConfig':
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file '{path}' must contain a mapping at the top level.")
        return cls.model_validate(cls._apply_env_overrides(data, environ), context={"environ": environ})

    @classmethod
    def load(cls, path: Optional[Union[str, Path]]=None, environ: Optional[Dict[str, str]]=None) -> tuple['MainConfig', Optional[Path]]:
        """
        Build the configuration once at start-up.

        An explicit path must exist; the default ~/.sendtokindle.yaml is optional.
        Returns the config and the file it was read from (None if defaults only).
        """
        main.load_dotenv() # load .env file
        if path is not None:
            config_file = Path(path).expanduser()
            if not config_file.is_file():
                raise FileNotFoundError(f"Configuration file '{config_file}' not found.")
        else:
            config_file = default_config_path()
            if not config_file.is_file():
                return cls.model_validate(cls._apply_env_overrides({}, environ), context={"environ": environ}), None
        return cls.from_yaml(config_file, environ), config_file

    @staticmethod
    def _apply_env_overrides(data: Dict[str, Any], environ: Optional[Dict[str, str]]=None) -> Dict[str, Any]:
        """Override file values with SENDTOKINDLE_<SECTION>_<FIELD> and SENDTOKINDLE_LOG_FILE"""
        environ = os.environ if environ is None else environ
        data = dict(data)
        sections = {"message": MessageConfig, "deliver": DelivererConfig}
        for section, model in sections.items():
            values = dict(data.get(section) or {})
            for field in model.model_fields:
                envname = f"{ENV_PREFIX}{section}_{field}".upper()
                if environ.get(envname):
                    values[field] = environ[envname]
            if values:
                data[section] = values
        if environ.get(f"{ENV_PREFIX}LOG_FILE"):
            data["log_file"] = environ[f"{ENV_PREFIX}LOG_FILE"]
        return data

    @staticmethod
    def _resolve_references(data: Dict[str,Any], environ: Optional[Dict[str, str]]=None) -> Dict[str, Any]:
        """Recursively resolve 'file:path', 'env:variable' and '$variable' references against environ (default os.environ)"""
        environ = os.environ if environ is None else environ
        if isinstance(data, dict):
            result = {}
            for key, value in data.items():
                if isinstance(value, str) and value.startswith('file:'):
                    filepath = value[5:]
                    try:
                        with open(os.path.expanduser(filepath), 'r', encoding='utf-8') as f:
                            result[key] = f.read().strip()
                    except OSError as e:
                        raise ValueError(f"Failed to load file '{filepath}'. Reason: {e}")
                elif isinstance(value, str) and (value.startswith('env:') or value.startswith('$')):
                    envname = value[4:] if value.startswith('env:') else value[1:]
                    value = environ.get(envname)
                    if not value:
                        raise ValueError(f"Environment variable '{envname}' is not set or is empty. Please check your .env file or environment variables.")
                    result[key] = value
                else:
                    result[key] = MainConfig._resolve_references(value, environ)
            return result
        elif isinstance(data, list):
            return [MainConfig._resolve_references(item, environ) for item in data]
        else:
            return data

    def get_pipeline_configs(self) -> Dict[str, Any]:
        """Convert all configs to pipeline dataclasses"""
        return {
            "message": self.message.to_pipeline_config(),
            "deliver": self.deliver.to_pipeline_config(),
            "log_file": self.log_file
        }
