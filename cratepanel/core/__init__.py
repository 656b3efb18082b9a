from cratepanel.core.app import Cratepanel

__version__ = "v0.3.0"
