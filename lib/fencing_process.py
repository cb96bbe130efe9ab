import os
import stat
import time
import signal
import logging
import threading
import subprocess

from fencing_agent import ACTION_NONE, action_to_string
from fencing_agent import FenceTimeout, ProcessFailure, TransportError, ConfigurationError

__all__ = ['METADATA_ARGS', 'is_executable', 'format_input', 'run_command',
		'run_metadata', 'run_agent']

METADATA_ARGS = ["-o", "metadata"]


def is_executable(path):
	if os.path.exists(path):
		stats = os.stat(path)
		if stat.S_ISREG(stats.st_mode) and os.access(path, os.X_OK):
			return True
	return False

def _line(key, value):
	if "\n" in key or "\n" in value:
		raise ConfigurationError("Option '%s' can not contain a new line" % (key))
	return "%s=%s\n" % (key, value)

def format_input(action=ACTION_NONE, port=None, parameters=None):
	"""
	Prepare configuration which is entered on STDIN of fence agent

	One "key=value" line per value: action (omitted for ACTION_NONE), port and
	then all values of every parameter. Parameter names are sorted, values of
	a repeated parameter stay in their order. ConfigurationError is raised for
	a value with a new line as it would be read as another option.
	"""
	lines = []

	if action != ACTION_NONE:
		lines.append(_line("action", action_to_string(action)))
	if port:
		lines.append(_line("port", port))
	for name in sorted(parameters or {}):
		for value in parameters[name]:
			lines.append(_line(name, value))

	return "".join(lines)

def _kill(process):
	# child runs in its own session, so its whole process group is killed
	try:
		os.killpg(process.pid, signal.SIGKILL)
	except OSError:
		try:
			process.kill()
		except ProcessLookupError:
			# process is already gone
			pass

def _read(pipe, result, key):
	try:
		result[key] = pipe.read()
	except (OSError, ValueError) as error:
		result["error"] = error

def _write(pipe, text, result):
	try:
		pipe.write(text)
		pipe.close()
	except BrokenPipeError:
		# agent exited without reading whole configuration
		pass
	except (OSError, ValueError) as error:
		result["error"] = error

def _start(target, *args):
	thread = threading.Thread(target=target, args=args)
	thread.daemon = True
	thread.start()
	return thread

def run_command(command, args=None, stdin=None, timeout=None):
	"""
	Run command and wait until it exits or timeout (in seconds) expires

	When stdin is not None it is written to the process and the pipe is closed
	afterwards. timeout 0 or None waits without limit. Returns
	(status, stdout, stderr), exit status is not interpreted here.

	The deadline covers the process and its output. When a process which
	escaped the killed process group keeps the pipes open, the reading threads
	are abandoned and FenceTimeout is raised anyway.
	"""
	argv = [command] + list(args or [])
	if timeout == 0:
		timeout = None
	if timeout is not None:
		timeout = float(timeout)

	logging.info("Executing: %s\n", " ".join(argv))

	try:
		process = subprocess.Popen(argv,
				stdin=(subprocess.PIPE if stdin is not None else subprocess.DEVNULL),
				stdout=subprocess.PIPE, stderr=subprocess.PIPE,
				encoding="utf-8", errors="replace", start_new_session=True)
	except OSError as error:
		raise TransportError("Unable to run %s: %s" % (command, str(error)))

	time_start = time.time()

	def remaining():
		if timeout is None:
			return None
		return max(0, timeout - (time.time() - time_start))

	# pipes are read while waiting, so a chatty agent can not block on full pipe
	result = {}
	threads = [_start(_read, process.stdout, result, "stdout"),
			_start(_read, process.stderr, result, "stderr")]
	if stdin is not None:
		threads.append(_start(_write, process.stdin, stdin, result))

	try:
		status = process.wait(remaining())
		for thread in threads:
			thread.join(remaining())
			if thread.is_alive():
				raise subprocess.TimeoutExpired(argv, timeout)
	except subprocess.TimeoutExpired:
		_kill(process)
		process.wait()
		logging.debug("Stop waiting for %s after %s\n", command, str(timeout))
		raise FenceTimeout(command, timeout)

	if "error" in result:
		raise TransportError("Unable to communicate with %s: %s" % (command, str(result["error"])))

	(pipe_stdout, pipe_stderr) = (result.get("stdout", ""), result.get("stderr", ""))
	logging.debug("%s %s %s\n", str(status), str(pipe_stdout), str(pipe_stderr))

	return (status, pipe_stdout, pipe_stderr)

def run_metadata(command, timeout=None):
	"""
	Ask fence agent for its metadata, STDIN is not used
	"""
	(status, pipe_stdout, pipe_stderr) = run_command(command, METADATA_ARGS, timeout=timeout)
	if status != 0:
		raise ProcessFailure(command, status, pipe_stdout, pipe_stderr)
	return pipe_stdout

def run_agent(command, action=ACTION_NONE, port=None, parameters=None, timeout=None):
	"""
	Run fence agent without arguments, configuration is entered on STDIN

	Returns STDOUT of agent, non-zero exit status is raised as ProcessFailure.
	"""
	(status, pipe_stdout, pipe_stderr) = run_command(command,
			stdin=format_input(action, port, parameters), timeout=timeout)
	if status != 0:
		raise ProcessFailure(command, status, pipe_stdout, pipe_stderr)
	return pipe_stdout
