"""Configuration module for testflight-uploader."""

from testflight_uploader.config.settings import UploaderConfig, load_config

__all__ = ["UploaderConfig", "load_config"]
