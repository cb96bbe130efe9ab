import logging

__all__ = ['ACTION_NONE', 'ACTION_ON', 'ACTION_OFF', 'ACTION_REBOOT', 'ACTION_STATUS',
		'ACTION_LIST', 'ACTION_MONITOR', 'CONTENT_STRING', 'CONTENT_BOOLEAN',
		'DEVICE_OK', 'DEVICE_KO', 'string_to_action', 'action_to_string', 'parse_bool',
		'Parameter', 'Agent', 'AgentConfig', 'PortName', 'FenceException',
		'MalformedMetadata', 'UnsupportedContentType', 'InvalidDefaultValue',
		'UnknownAgent', 'UnknownAction', 'FenceTimeout', 'ProcessFailure',
		'MalformedListOutput', 'TransportError', 'ConfigurationError']

## ACTION_NONE lets the agent run its own default action,
## it is never sent to an agent
ACTION_NONE = 0
ACTION_ON = 1
ACTION_OFF = 2
ACTION_REBOOT = 3
ACTION_STATUS = 4
ACTION_LIST = 5
ACTION_MONITOR = 6

CONTENT_STRING = "string"
CONTENT_BOOLEAN = "boolean"

DEVICE_OK = "ok"
DEVICE_KO = "ko"

## enable/disable are the fabric fencing synonyms of on/off
_ACTION_TOKENS = {
	"on" : ACTION_ON,
	"enable" : ACTION_ON,
	"off" : ACTION_OFF,
	"disable" : ACTION_OFF,
	"reboot" : ACTION_REBOOT,
	"status" : ACTION_STATUS,
	"list" : ACTION_LIST,
	"monitor" : ACTION_MONITOR,
}

_ACTION_NAMES = {
	ACTION_NONE : "",
	ACTION_ON : "on",
	ACTION_OFF : "off",
	ACTION_REBOOT : "reboot",
	ACTION_STATUS : "status",
	ACTION_LIST : "list",
	ACTION_MONITOR : "monitor",
}

_TRUE_VALUES = ["1", "t", "true", "yes", "on"]
_FALSE_VALUES = ["0", "f", "false", "no", "off"]


class FenceException(Exception):
	pass

class MalformedMetadata(FenceException):
	pass

class UnsupportedContentType(FenceException):
	def __init__(self, agent_name, parameter_name, content_type):
		FenceException.__init__(self, "Agent: %s, parameter: %s. Wrong content type: %s" % \
				(agent_name, parameter_name, content_type))
		self.agent_name = agent_name
		self.parameter_name = parameter_name
		self.content_type = content_type

class InvalidDefaultValue(FenceException):
	def __init__(self, agent_name, parameter_name, value):
		FenceException.__init__(self, "Agent: %s, parameter: %s. Invalid default value: %s" % \
				(agent_name, parameter_name, value))
		self.agent_name = agent_name
		self.parameter_name = parameter_name
		self.value = value

class UnknownAgent(FenceException):
	def __init__(self, name):
		FenceException.__init__(self, "Unknown agent: %s" % (name))
		self.name = name

class UnknownAction(FenceException):
	def __init__(self, action):
		FenceException.__init__(self, "Unknown fence action: %s" % (action))
		self.action = action

class FenceTimeout(FenceException):
	def __init__(self, command, timeout):
		FenceException.__init__(self, "%s timed out after %s second(s)" % (command, timeout))
		self.command = command
		self.timeout = timeout

class ProcessFailure(FenceException):
	"""
	Agent ran to completion but reported a failure through its exit code
	"""
	def __init__(self, command, returncode, stdout="", stderr=""):
		FenceException.__init__(self, "%s exited with status %d" % (command, returncode))
		self.command = command
		self.returncode = returncode
		self.stdout = stdout
		self.stderr = stderr

class MalformedListOutput(FenceException):
	def __init__(self, line):
		FenceException.__init__(self, "Wrong list format: %r" % (line))
		self.line = line

class TransportError(FenceException):
	pass

class ConfigurationError(FenceException):
	pass


def string_to_action(action):
	try:
		return _ACTION_TOKENS[action]
	except (KeyError, TypeError):
		raise UnknownAction(action)

def action_to_string(action):
	try:
		return _ACTION_NAMES[action]
	except (KeyError, TypeError):
		raise UnknownAction(action)

def parse_bool(value):
	if value.strip().lower() in _TRUE_VALUES:
		return True
	if value.strip().lower() in _FALSE_VALUES:
		return False
	raise ValueError("invalid boolean value: %r" % (value))


class _Record(object):
	def __eq__(self, other):
		return type(self) is type(other) and self.__dict__ == other.__dict__

	def __ne__(self, other):
		return not self.__eq__(other)

	def __repr__(self):
		fields = ", ".join(["%s=%r" % (k, v) for (k, v) in sorted(self.__dict__.items())])
		return "%s(%s)" % (self.__class__.__name__, fields)


class Parameter(_Record):
	def __init__(self, name, required=False, unique=False, description="",
			content_type=CONTENT_STRING, has_options=False, options=None, default=None):
		self.name = name
		self.required = required
		self.unique = unique
		self.description = description
		self.content_type = content_type
		self.has_options = has_options
		self.options = list(options or [])
		self.default = default


class PortName(_Record):
	def __init__(self, name, alias=""):
		self.name = name
		self.alias = alias


class Agent(_Record):
	"""
	Capabilities of one fence agent as reported by its metadata

	Reserved metadata parameters are not kept in parameters: "action" becomes
	default_action, "port" becomes multiple_ports and "separator" is dropped.
	"""
	def __init__(self, name="", short_description="", long_description="", command=None):
		self.name = name
		self.short_description = short_description
		self.long_description = long_description
		self.command = command
		self.parameters = {}
		self.actions = []
		self.default_action = ACTION_NONE
		self.multiple_ports = False
		self.unfence_action = ACTION_NONE
		self.unfence_on_target = False

	def supports(self, action):
		return action in self.actions

	def validate(self, agent_config):
		"""
		Check agent_config against declared parameters

		Returns list of problems, it is empty for a valid configuration.
		"""
		problems = []

		for (name, param) in sorted(self.parameters.items()):
			if param.required and param.default is None and not agent_config.get_parameter(name):
				problems.append("Missing required parameter '%s'" % (name))

		for (name, values) in sorted(agent_config.parameters.items()):
			if name not in self.parameters:
				problems.append("Unknown parameter '%s'" % (name))
				continue

			param = self.parameters[name]
			for value in values:
				if "\n" in value:
					problems.append("Parameter '%s' can not contain a new line" % (name))
				elif param.content_type == CONTENT_BOOLEAN:
					try:
						parse_bool(value)
					except ValueError:
						problems.append("Parameter '%s' has invalid boolean value '%s'" % (name, value))
				elif param.has_options and \
						value.upper() not in [o.upper() for o in param.options]:
					problems.append("Parameter '%s' has invalid choice '%s', expected one of: %s" % \
							(name, value, ", ".join(param.options)))

		if agent_config.port and not self.multiple_ports:
			problems.append("Agent %s does not accept a port" % (self.name))
		elif agent_config.port and "\n" in agent_config.port:
			problems.append("Port can not contain a new line")

		for problem in problems:
			logging.debug("%s: %s\n", self.name, problem)

		return problems


class AgentConfig(_Record):
	"""
	Invocation context of an agent, parameter values are lists so one
	parameter can be passed more than once
	"""
	def __init__(self, provider_name, agent_name, port=None, parameters=None):
		self.provider_name = provider_name
		self.agent_name = agent_name
		self.port = port
		self.parameters = {}
		for (name, values) in (parameters or {}).items():
			self.parameters[name] = list(values)

	def set_parameter(self, name, value):
		self.parameters[name] = [value]

	def add_parameter(self, name, value):
		self.parameters.setdefault(name, []).append(value)

	def get_parameter(self, name):
		return list(self.parameters.get(name, []))
