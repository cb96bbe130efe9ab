import sys
import copy
import glob
import time
import syslog
import logging

from configobj import ConfigObj, ConfigObjError

from fencing_agent import ACTION_NONE, ACTION_STATUS, ACTION_MONITOR, ACTION_LIST
from fencing_agent import DEVICE_OK, DEVICE_KO, AgentConfig, PortName, action_to_string
from fencing_agent import FenceException, FenceTimeout, ProcessFailure, UnknownAgent
from fencing_agent import MalformedListOutput, ConfigurationError
from fencing_metadata import parse_metadata, build_agent
from fencing_process import is_executable, run_metadata, run_agent

__all__ = ['AgentProvider', 'ProviderConfig', 'read_agent_config', 'parse_port_list',
		'setup_logging', 'SyslogLibHandler', 'DEFAULT_GLOB', 'PROVIDER_NAME']

DEFAULT_GLOB = "/usr/sbin/fence_*"
PROVIDER_NAME = "fence-agents"

LOG_FORMAT = "%(asctime)-15s %(levelname)s: %(message)s"


class ProviderConfig(object):
	"""
	Settings of AgentProvider

	Timeouts are in seconds, 0 means wait without limit. They are used when
	timeout is not given to a call of AgentProvider.

	Example of configuration file:
	glob = "/usr/sbin/fence_*"
	load_timeout = 30
	action_timeout = 60
	"""
	def __init__(self, glob=DEFAULT_GLOB, load_timeout=0, action_timeout=0):
		self.glob = glob
		self.load_timeout = load_timeout
		self.action_timeout = action_timeout

	@classmethod
	def from_file(cls, path):
		config = _read_config(path)
		try:
			return cls(glob=str(config.get("glob", DEFAULT_GLOB)),
					load_timeout=float(config.get("load_timeout", 0)),
					action_timeout=float(config.get("action_timeout", 0)))
		except (TypeError, ValueError) as error:
			raise ConfigurationError("Invalid value in %s: %s" % (path, str(error)))

def _read_config(path):
	try:
		return ConfigObj(path, unrepr=True, file_error=True)
	except (IOError, OSError, ConfigObjError, SyntaxError) as error:
		raise ConfigurationError("Unable to read configuration %s: %s" % (path, str(error)))

def _option_value(value):
	if isinstance(value, bool):
		return "1" if value else "0"
	return str(value)

def read_agent_config(path):
	"""
	Read configuration of fence device from file

	Example of device definition:
	agent = "fence_apc"
	port = "1"
	[options]
		ipaddr = "fence.example.com"
		login = "foo"
		ssh_options = [ "-4", "-t" ]

	A list value means that the option is entered several times.
	"""
	config = _read_config(path)

	if "agent" not in config:
		raise ConfigurationError("Fence agent has to be defined in %s" % (path))

	port = config.get("port")
	agent_config = AgentConfig(str(config.get("provider", PROVIDER_NAME)), str(config["agent"]),
			port=(None if port is None else _option_value(port)))

	for (name, value) in config.get("options", {}).items():
		if isinstance(value, (list, tuple)):
			for item in value:
				agent_config.add_parameter(name, _option_value(item))
		else:
			agent_config.set_parameter(name, _option_value(value))

	return agent_config

def parse_port_list(output):
	"""
	Parse output of 'list' action, one "name" or "name,alias" per line
	"""
	ports = []
	for line in output.split("\n"):
		if line.endswith("\r"):
			line = line[:-1]
		if line == "":
			continue
		fields = line.split(",")
		if len(fields) == 1:
			ports.append(PortName(fields[0]))
		elif len(fields) == 2:
			ports.append(PortName(fields[0], fields[1]))
		else:
			raise MalformedListOutput(line)
	return ports


class AgentProvider(object):
	"""
	Catalog of fence agents found on local filesystem and the way to run them

	Catalog is replaced as a whole by load_agents(), readers always see
	either the previous or the new one. Callers get copies of agents.
	"""
	def __init__(self, config=None):
		self.config = config or ProviderConfig()
		self._agents = {}

	def _timeout(self, timeout, default):
		if timeout is None:
			return default
		return timeout

	def load_agents(self, timeout=None):
		"""
		Find all agents matching configured glob and ask them for metadata

		Agent which can not be loaded is skipped. FenceTimeout is raised when
		timeout expires before all candidates were tried, the catalog is
		emptied then. When several agents report the same name, the last one
		found wins.
		"""
		timeout = self._timeout(timeout, self.config.load_timeout)
		agents = {}

		files = sorted(glob.glob(self.config.glob))
		time_start = time.time()
		next_timeout = 0

		for path in files:
			if timeout:
				next_timeout = timeout - (time.time() - time_start)
				if next_timeout <= 0:
					self._agents = {}
					logging.error("Loading of fence agents stopped after %s second(s)\n", str(timeout))
					raise FenceTimeout(self.config.glob, timeout)

			if not is_executable(path):
				logging.debug("Skipping %s, it is not an executable file\n", path)
				continue

			try:
				agent = self.load_agent(path, next_timeout)
			except FenceException as error:
				logging.warning("Unable to load fence agent %s: %s\n", path, str(error))
				continue

			agents[agent.name] = agent

		self._agents = agents
		logging.info("Loaded %d fence agent(s)\n", len(agents))

	def load_agent(self, path, timeout=None):
		timeout = self._timeout(timeout, self.config.load_timeout)
		metadata = parse_metadata(run_metadata(path, timeout))
		return build_agent(metadata, command=path)

	def get_agent(self, name):
		try:
			return copy.deepcopy(self._agents[name])
		except KeyError:
			raise UnknownAgent(name)

	def get_agents(self):
		return copy.deepcopy(self._agents)

	def validate(self, agent_config):
		return self.get_agent(agent_config.agent_name).validate(agent_config)

	def _run(self, agent_config, action, timeout):
		agents = self._agents
		if agent_config.agent_name not in agents:
			raise UnknownAgent(agent_config.agent_name)
		if action != ACTION_NONE and not agents[agent_config.agent_name].supports(action):
			logging.debug("%s does not declare action %s, running it anyway\n", \
					agent_config.agent_name, action_to_string(action))

		return run_agent(agents[agent_config.agent_name].command, action,
				port=agent_config.port, parameters=agent_config.parameters,
				timeout=self._timeout(timeout, self.config.action_timeout))

	def _device_status(self, agent_config, action, timeout):
		try:
			self._run(agent_config, action, timeout)
		except ProcessFailure as error:
			logging.debug("%s: %s\n", agent_config.agent_name, str(error))
			return DEVICE_KO
		return DEVICE_OK

	def status(self, agent_config, timeout=None):
		return self._device_status(agent_config, ACTION_STATUS, timeout)

	def monitor(self, agent_config, timeout=None):
		return self._device_status(agent_config, ACTION_MONITOR, timeout)

	def list_ports(self, agent_config, timeout=None):
		return parse_port_list(self._run(agent_config, ACTION_LIST, timeout))

	def run(self, agent_config, action=ACTION_NONE, timeout=None):
		"""
		Run action, ACTION_NONE leaves the choice of action to the agent

		Exit status is not interpreted, non-zero one is raised as ProcessFailure.
		Returns STDOUT of agent.
		"""
		return self._run(agent_config, action, timeout)


## Own logger handler that uses old-style syslog handler as otherwise everything is sourced
## from /dev/syslog
class SyslogLibHandler(logging.StreamHandler):
	"""
	A handler class that correctly push messages into syslog
	"""
	def emit(self, record):
		syslog_level = {
			logging.CRITICAL:syslog.LOG_CRIT,
			logging.ERROR:syslog.LOG_ERR,
			logging.WARNING:syslog.LOG_WARNING,
			logging.INFO:syslog.LOG_INFO,
			logging.DEBUG:syslog.LOG_DEBUG,
			logging.NOTSET:syslog.LOG_DEBUG,
		}[record.levelno]

		msg = self.format(record)

		# syslog.syslog can not have 0x00 character inside or exception is thrown
		syslog.syslog(syslog_level, msg.replace("\x00", "\n"))

def setup_logging(verbose=False, debug_file=None, use_syslog=False):
	formatter = logging.Formatter(LOG_FORMAT)
	logger = logging.getLogger()

	if verbose:
		logger.setLevel(logging.DEBUG)

	if use_syslog:
		logger.addHandler(SyslogLibHandler())

	stderr_handler = logging.StreamHandler(sys.stderr)
	stderr_handler.setFormatter(formatter)
	logger.addHandler(stderr_handler)

	if debug_file:
		try:
			debug_handler = logging.FileHandler(debug_file)
		except IOError as error:
			raise ConfigurationError("Unable to create file %s: %s" % (debug_file, str(error)))
		debug_handler.setLevel(logging.DEBUG)
		debug_handler.setFormatter(formatter)
		logger.addHandler(debug_handler)
