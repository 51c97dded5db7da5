"""Health probe runner and probe kinds."""

from .command_probe import CommandProbe
from .http_probe import HttpProbe
from .interfaces import ProbePort
from .runner import HealthProbeRunner
from .sql_probe import SqlProbe, probe_create_engine

__all__ = [
	"CommandProbe",
	"HealthProbeRunner",
	"HttpProbe",
	"ProbePort",
	"SqlProbe",
	"probe_create_engine",
]
