"""
Layered configuration for gridlink, read with configobj and validated against
an embedded configspec.

Files are looked up by name in a configuration directory and merged in this order,
later files overriding earlier ones:

- <name>.default.cfg
- <name>.<os>.cfg
- ~/<name>.cfg
- <name>.cfg
"""
import os
import platform

from configobj import ConfigObj, ConfigObjError, flatten_errors
from validate import Validator

# The default extension for configuration files
config_extension = '.cfg'

default_name = 'gridlink'

config_spec = """
[discovery]
host = string(default='127.0.0.1')
me = string(default='127.0.0.1')
port = integer(min=1, max=65535, default=12002)
window = float(min=0, default=1.0)
collect_unbound_properties = boolean(default=True)

[session]
prefix = string(default='/-')
""".strip().splitlines()


def config_flavor(name, flavor=None):
    """
    >>> config_flavor('gridlink', 'osx')
    'gridlink.osx'
    >>> config_flavor('gridlink')
    'gridlink'
    """
    return name if not flavor else name + '.' + flavor


def config_filename(name, directory):
    return os.path.join(directory, name + config_extension)


def load_config_file(file, must_exist=False) -> ConfigObj:
    """
    Loads a single configuration file.
    :param must_exist:  when True, a missing file raises IOError, otherwise an empty config is returned.
    """
    try:
        return ConfigObj(file, file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def map_os_name(name):
    """
    >>> map_os_name('Windows')
    'windows'
    >>> map_os_name("Darwin")
    'osx'
    """
    name = name.lower()
    if name == 'darwin':
        name = 'osx'
    return name


def os_name():
    return map_os_name(platform.system())


def layered_files(name, directory):
    """ lists the configuration files in the order they are merged. """
    files = [config_filename(config_flavor(name, 'default'), directory),
             config_filename(config_flavor(name, os_name()), directory),
             os.path.expanduser('~/' + name + config_extension),
             config_filename(name, directory)]
    return files


def validate_config(config: ConfigObj, name=default_name) -> ConfigObj:
    """
    Validates the config against the gridlink configspec, filling in defaults and converting
    values to their declared types.
    Raises ConfigObjError listing the failing keys if validation fails.
    """
    config.configspec = ConfigObj(config_spec, list_values=False, _inspec=True)
    result = config.validate(Validator(), preserve_errors=True)
    if result is not True:
        failures = ['.'.join(sections + [key or '']) for sections, key, _ in flatten_errors(config, result)]
        raise ConfigObjError("the config %s failed validation: %s" % (name, ', '.join(failures)))
    return config


def load_config(name=default_name, directory=None) -> ConfigObj:
    """
    Loads and merges all configuration files for the given name, then validates the result.
    :param directory: the directory holding the configuration files. Defaults to the working directory.
    """
    directory = directory or os.getcwd()
    config = ConfigObj()
    for file in layered_files(name, directory):
        config.merge(load_config_file(file))
    return validate_config(config, name)


def default_config() -> ConfigObj:
    """ the configuration with every value at its default. """
    return validate_config(ConfigObj())


def connection_settings(config: ConfigObj) -> dict:
    """
    Flattens a validated config into the keyword arguments accepted by connect_all().
    """
    discovery = config['discovery']
    return dict(host=discovery['host'],
                me=discovery['me'],
                port=discovery['port'],
                window=discovery['window'],
                collect_unbound_properties=discovery['collect_unbound_properties'],
                prefix=config['session']['prefix'])
