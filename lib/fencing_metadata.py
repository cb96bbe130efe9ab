import logging
import xml.etree.ElementTree as ET

from fencing_agent import Agent, Parameter, ACTION_ON, CONTENT_STRING, CONTENT_BOOLEAN
from fencing_agent import string_to_action, parse_bool
from fencing_agent import MalformedMetadata, UnsupportedContentType, InvalidDefaultValue, UnknownAction

__all__ = ['parse_metadata', 'build_agent', 'UNRECOGNIZED_IGNORE', 'UNRECOGNIZED_FAIL',
		'ResourceAgentMetadata', 'MetadataParameter', 'MetadataContent', 'MetadataAction']

## What to do with action tokens outside of the fencing actions (e.g. metadata,
## validate-all, list-status) and with an unknown default of "action" parameter
UNRECOGNIZED_IGNORE = "ignore"
UNRECOGNIZED_FAIL = "fail"


class MetadataContent(object):
	def __init__(self, content_type="", default="", options=None):
		self.content_type = content_type
		self.default = default
		self.options = options or []

class MetadataParameter(object):
	def __init__(self, name, unique=False, required=False, short_description="", content=None):
		self.name = name
		self.unique = unique
		self.required = required
		self.short_description = short_description
		self.content = content or MetadataContent()

class MetadataAction(object):
	def __init__(self, name, on_target="", automatic=""):
		self.name = name
		self.on_target = on_target
		self.automatic = automatic

class ResourceAgentMetadata(object):
	"""
	Raw content of <resource-agent> document, nothing is validated here
	"""
	def __init__(self, name="", short_description=""):
		self.name = name
		self.short_description = short_description
		self.long_description = ""
		self.vendor_url = ""
		self.symlinks = []
		self.parameters = []
		self.actions = []


def _text(element):
	if element is None or element.text is None:
		return ""
	return element.text

def _flag(element, attribute):
	value = element.get(attribute, "")
	if value.strip() == "":
		return False
	try:
		return parse_bool(value)
	except ValueError:
		raise MalformedMetadata("Attribute %s of <%s name=\"%s\"> is not a boolean: %s" % \
				(attribute, element.tag, element.get("name", ""), value))

def parse_metadata(mdxml):
	"""
	Parse output of 'fence_* -o metadata' into ResourceAgentMetadata

	mdxml can be bytes or text. MalformedMetadata is raised when the document
	can not be parsed or it is not a <resource-agent> document.
	"""
	try:
		root = ET.fromstring(mdxml.strip())
	except ET.ParseError as error:
		raise MalformedMetadata("Unable to parse metadata: %s" % (str(error)))

	if root.tag != "resource-agent":
		raise MalformedMetadata("Expected <resource-agent> element, found <%s>" % (root.tag))

	metadata = ResourceAgentMetadata(root.get("name", ""), root.get("shortdesc", ""))
	metadata.long_description = _text(root.find("longdesc"))
	metadata.vendor_url = _text(root.find("vendor-url"))
	metadata.symlinks = [(s.get("name", ""), s.get("shortdesc", "")) for s in root.findall("symlink")]

	for param in root.findall("./parameters/parameter"):
		content = param.find("content")
		if content is None:
			md_content = MetadataContent()
		else:
			md_content = MetadataContent(content.get("type", ""), content.get("default", ""),
					[o.get("value", "") for o in content.findall("option")])

		metadata.parameters.append(MetadataParameter(param.get("name", ""),
				unique=_flag(param, "unique"),
				required=_flag(param, "required"),
				short_description=_text(param.find("shortdesc")),
				content=md_content))

	for action in root.findall("./actions/action"):
		metadata.actions.append(MetadataAction(action.get("name", ""),
				on_target=action.get("on_target", ""),
				automatic=action.get("automatic", "")))

	return metadata

def _build_parameter(agent_name, md_param):
	param = Parameter(md_param.name, required=md_param.required, unique=md_param.unique,
			description=md_param.short_description)
	content = md_param.content

	if content.content_type == "boolean":
		param.content_type = CONTENT_BOOLEAN
		if content.default:
			try:
				param.default = parse_bool(content.default)
			except ValueError:
				raise InvalidDefaultValue(agent_name, md_param.name, content.default)
	elif content.content_type == "string":
		param.content_type = CONTENT_STRING
		if content.default:
			param.default = content.default
	elif content.content_type == "select":
		# select without any option accepts any string
		param.content_type = CONTENT_STRING
		param.has_options = len(content.options) > 0
		if content.default:
			param.default = content.default
		param.options = list(content.options)
	else:
		raise UnsupportedContentType(agent_name, md_param.name, content.content_type)

	return param

def build_agent(metadata, command=None, unrecognized=UNRECOGNIZED_IGNORE):
	"""
	Convert ResourceAgentMetadata into Agent

	A new Agent is returned only when whole metadata was converted, errors in
	parameter declarations (UnsupportedContentType, InvalidDefaultValue) are
	raised before anything is returned.
	"""
	agent = Agent(metadata.name, metadata.short_description, metadata.long_description, command)

	for md_param in metadata.parameters:
		if md_param.name == "action":
			if md_param.content.default:
				try:
					agent.default_action = string_to_action(md_param.content.default)
				except UnknownAction:
					if unrecognized == UNRECOGNIZED_FAIL:
						raise
					logging.debug("%s: ignoring unknown default action %s\n", \
							metadata.name, md_param.content.default)
			continue
		if md_param.name == "port":
			agent.multiple_ports = True
			continue
		if md_param.name == "separator":
			continue

		agent.parameters[md_param.name] = _build_parameter(metadata.name, md_param)

	for md_action in metadata.actions:
		if md_action.name == "on":
			if md_action.automatic == "1":
				agent.unfence_action = ACTION_ON
			if md_action.on_target == "1":
				agent.unfence_on_target = True

		try:
			agent.actions.append(string_to_action(md_action.name))
		except UnknownAction:
			if unrecognized == UNRECOGNIZED_FAIL:
				raise
			continue

	return agent
