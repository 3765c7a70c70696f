import os

import yaml

DEFAULT_CONFIG_PATH = "config/settings.yaml"


class Config:
    _config = None

    @classmethod
    def load(cls, path=None):
        if cls._config is None:
            path = path or os.getenv("PERSIST_REFRESH_CONFIG", DEFAULT_CONFIG_PATH)
            try:
                with open(path, "r") as f:
                    cls._config = yaml.safe_load(f) or {}
            except FileNotFoundError:
                cls._config = {}
        return cls._config

    @classmethod
    def reset(cls, config=None):
        """Drop the cached settings, optionally replacing them with ``config``."""
        cls._config = config

    @classmethod
    def get(cls, *keys, default=None):
        cfg = cls.load()
        for key in keys:
            if not isinstance(cfg, dict):
                return default
            cfg = cfg.get(key)
        return cfg if cfg is not None else default
