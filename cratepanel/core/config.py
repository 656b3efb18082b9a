"""
Tools for managing config files.

The config directory is found through the CRATEPANEL_CONFIG environment variable
so the panel can live in a container and still be tested from a checkout.
If no config.toml exists yet, one is generated with the defaults below.
"""

from pathlib import Path
from pydantic import BaseModel
import toml
import os

import logging

from typing import Optional

# Grab the logger
log = logging.getLogger('cratepanel')


# Pydantic model containing all the settings and modifiable values.
class _App(BaseModel):
    name: str = "Cratepanel"
    flair: Optional[str] = "\U0001F4E6"
    version: str = "0.3.0"
    summary: str = "Control panel for hosted game server instances."

class _Server(BaseModel):
    port: int = 8080
    host: str = '0.0.0.0'

class _RateLimits(BaseModel):
    enabled: bool = True
    rules: tuple = ("6/6 seconds", "120/minute")

class _Paths(BaseModel):
    instances: Path = Path('/home/container')
    plugins: Path = Path('./plugins')
    routers: Path = Path('./routers')
    temp: Path = Path('./temp')

class _Advanced(BaseModel):
    cache_openapi: bool = True
    integrated_docs: bool = True
    log_level: str = 'INFO'

class ConfigModel(BaseModel):
    app: _App = _App()
    server: _Server = _Server()
    rate_limits: _RateLimits = _RateLimits()
    paths: _Paths = _Paths()
    advanced: _Advanced = _Advanced()


# Some helper functions for managing our config.toml file
def config_load() -> ConfigModel:
    """
    Load the config.toml file to a ConfigModel
    """
    with open(CONFIG_PATH / 'config.toml', mode='r', encoding='UTF-8') as fp:
        _config = toml.load(fp)

    return ConfigModel.model_validate(_config)

def config_dump(obj: ConfigModel):
    """
    Dump a ConfigModel to the config.toml file
    """
    with open(CONFIG_PATH / 'config.toml', mode='w', encoding='UTF-8') as fp:
        toml.dump(
            obj.model_dump(mode='python'), fp,
            encoder=toml.TomlPathlibEncoder()
        )


# Check environment variables for the config path...
if _conf := os.environ.get('CRATEPANEL_CONFIG'):
    CONFIG_PATH = Path(_conf)
else:
    # ...if it isn't found, fall back to the working directory.
    CONFIG_PATH = Path('./config')
    log.warning("CRATEPANEL_CONFIG has not been set. Defaulting to ./config")

log.info('Loading config from %s' % CONFIG_PATH.absolute())

# Check if the config path leads to a file.
if CONFIG_PATH.is_file():
    raise NotADirectoryError(
        "Specified config directory is a file. Please delete it or change your config path."
    )

if not CONFIG_PATH.exists():
    log.warning("Config files don't exist. They will be generated.")
    CONFIG_PATH.mkdir(parents=True)

if not (CONFIG_PATH / 'config.toml').is_file():
    config_dump(ConfigModel())
    log.info("Generated a default config.toml. Review it before exposing the panel.")


# Create the config model object
Config = config_load()

# Set log level now that config is accessible
log.setLevel(Config.advanced.log_level)

__all__ = [
    'CONFIG_PATH',
    'Config',
    'ConfigModel',
    'config_load',
    'config_dump'
]
