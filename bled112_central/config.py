"""Manager for typed configuration variables.

ConfigManager holds the variables declared by config_variables.  Each
variable has a name, a typedargs type, a description and a default.
Defaults can be overridden through the environment by setting
BLED112_<NAME>, where NAME is the variable name in upper case with dashes
replaced by underscores, or by passing explicit overrides.
"""

from collections import namedtuple
import fnmatch
import os
from typedargs import type_system
from typedargs.exceptions import KeyValueException
from .config_variables import get_variables
from .exceptions import ConfigError

MISSING = object()
ConfigVariable = namedtuple("ConfigVariable", ['name', 'type', 'description', 'default'])


class ConfigManager:
    """Typed access to configuration variables.

    Args:
        overrides (dict): Values that take precedence over the environment
            and the defaults.
        environ (dict): The environment to read overrides from.  Defaults to
            os.environ.
    """

    def __init__(self, overrides=None, environ=None):
        self._known_variables = {}
        self._values = {}

        self.prefix, conf_vars = get_variables()
        for var in conf_vars:
            if len(var) == 3:
                var_obj = ConfigVariable(var[0], var[1], var[2], MISSING)
            else:
                var_obj = ConfigVariable(var[0], var[1], var[2], var[3])

            self._known_variables[var_obj.name] = var_obj

        if environ is None:
            environ = os.environ

        for name in self._known_variables:
            env_name = self._env_name(name)
            if env_name in environ:
                self.set(name, environ[env_name])

        if overrides is not None:
            for name, value in overrides.items():
                self.set(name, value)

    def _env_name(self, name):
        return "%s_%s" % (self.prefix.upper(), name.upper().replace('-', '_'))

    def _format_variable(self, name, var):
        """Format a helpful string describing a config variable."""

        if var.default is MISSING:
            return "%s (%s): %s [no default]" % (name, var.type, var.description)

        return "%s (%s): %s [default: %s]" % (name, var.type, var.description, var.default)

    def list(self, glob="*"):
        """List descriptions of all config variables matching a glob pattern."""

        known_vars = [x for x in sorted(self._known_variables) if fnmatch.fnmatchcase(x, glob)]
        return ['- ' + self._format_variable(x, self._known_variables[x]) for x in known_vars]

    def get(self, name):
        """Get the current typed value of a config variable."""

        var = self._lookup(name)

        val = self._values.get(name, var.default)
        if val is MISSING:
            raise ConfigError("Config variable not set and there is no default value", name=name)

        return self._convert(var, val)

    def set(self, name, value):
        """Set a config variable, checking that the value converts to its type."""

        var = self._lookup(name)
        self._convert(var, value)
        self._values[name] = value

    def reset(self, name):
        """Remove any value set for a config variable so its default is used."""

        self._lookup(name)
        self._values.pop(name, None)

    def _lookup(self, name):
        if name not in self._known_variables:
            raise ConfigError("Unknown config variable", name=name)

        return self._known_variables[name]

    @classmethod
    def _convert(cls, var, value):
        try:
            return type_system.convert_to_type(value, var.type)
        except (ValueError, TypeError, KeyValueException) as err:
            raise ConfigError("Invalid value for config variable", name=var.name, type=var.type,
                              value=value, error=str(err)) from err
