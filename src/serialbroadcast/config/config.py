import os
import platform

from configobj import ConfigObj, ConfigObjError, Section
from configobj.validate import Validator

# The default extension for configuration files
config_extension = '.cfg'

# The configuration name used for the package defaults and schema
default_config_name = 'serialbroadcast'

package_config_directory = os.path.dirname(__file__)


def config_flavor(name, flavor=None):
    configname = name if not flavor else name + '.' + flavor
    return configname


def config_filename(name, directory=None):
    """
    Determines the location of a config file in the given directory.
    """
    config_file = os.path.join(directory, name + config_extension)
    return config_file


def load_config_file_base(file, must_exist=True):
    """
    Loads a configuration file
    :param file:        The configuration file to load
    :param must_exist:  when True, the file must exist or an exception is thrown.
    :return: The ConfigObj instance for the file.
    """
    try:
        return ConfigObj(file, interpolation='Template', file_error=must_exist) \
            if must_exist or os.path.exists(file) else ConfigObj()
    except ConfigObjError as e:
        raise type(e)(str(e) + ' at ' + file)


def config_flavor_file(name, directory, subpart=None) -> ConfigObj:
    """
    Loads a specialization of a config file. The configuration file is expected to be named
    after the base, followed by a period and then the specialization, if the specialization is given,
    otherwise just the base name.
    :param name:    The name of the base configuration
    :param subpart: The name of the specialization.
    :return: The ConfigObj for the configuration file.
    """
    configname = config_flavor(name, subpart)
    file = config_filename(configname, directory)
    config = load_config_file_base(file, False)
    return config


def load_config_spec(directory=package_config_directory, name=default_config_name) -> ConfigObj:
    """
    Loads the schema that validates and supplies defaults for a configuration.
    """
    file = config_filename(config_flavor(name, 'schema'), directory)
    return ConfigObj(file, _inspec=True, file_error=True)


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


def load_config(name, directory, configspec=None, user_directory='~'):
    """
        Loads all the configuration files that relate to the given name.
        Configurations are loaded in this order:
        - the default specialization
        - the platform specialization
        - the user override
        - the base configuration
        The configurations are flattened into a single configuration, and then validated
        against the configuration schema.
    :param directory: the location of the configuration files
    :param configspec: the schema. Defaults to the package schema.
    :return: the validated ConfigObj
    """
    local_config = config_flavor_file(name, directory)
    default_config = config_flavor_file(name, directory, 'default')
    platform_config = config_flavor_file(name, directory, os_name())
    user_config = load_config_file_base(os.path.join(os.path.expanduser(user_directory),
                                                     name + config_extension), must_exist=False)
    config = ConfigObj()
    config.merge(default_config)
    config.merge(platform_config)
    config.merge(user_config)
    config.merge(local_config)
    return validate_config(config, configspec, name)


def validate_config(config: ConfigObj, configspec=None, name=default_config_name):
    """
    Validates the configuration against the schema, converting values to their declared types and
    filling in defaults.
    :raises ConfigObjError: when any value fails validation.
    """
    config.configspec = configspec if configspec is not None else load_config_spec()
    result = config.validate(Validator())
    if result is not True:
        raise ConfigObjError("the config file %s failed validation %s" % (name, result))
    return config


def apply_conf(conf: Section, target):
    """
    Applies the attributes contained in a configuration object to a target object.
    It does this by iterating over the items in the configuration and setting any attributes with the same name.
    :param conf:
    :param target:
    :return:
    """
    for k, v in conf.items():
        if hasattr(target, k):
            setattr(target, k, v)


class BroadcastConfig:
    """
    The settings for framing, dispatch, serial line and device detection.
    The attribute defaults match the package schema.
    """

    parities = ('none', 'odd', 'even', 'mark', 'space')
    failure_modes = ('drop', 'log', 'forward')

    def __init__(self, **kwargs):
        self.baud_rate = 9600
        self.data_bits = 8                  # character size, 5-8
        self.parity = 'none'
        self.stop_bits = 1                  # 1, 1.5 or 2
        self.dtr = True                     # initial modem output bits
        self.rts = True
        self.drain = True                   # wait for writes to be transmitted
        self.trace = False                  # log all bytes read and written
        self.delimiter = 10                 # byte value marking the end of a message
        self.read_size = 1024
        self.queue_size = 100               # frames waiting for dispatch, 0 is unbounded
        self.parallelism = 4
        self.failure_mode = 'log'
        self.encoding = 'utf-8'
        self.flush_remainder = False        # emit the undelimited remainder at end of stream
        self.pattern = None                 # device verification regular expression
        self.key = ''
        self.probe_timeout = 2.0
        self.probe_backoff = 1.0
        self.probe_backoff_factor = 1.0
        self.probe_backoff_max = None
        self.poll_interval = 0.1
        for k, v in kwargs.items():
            if not hasattr(self, k):
                raise TypeError("unknown configuration option '%s'" % k)
            setattr(self, k, v)
        self.validate()

    @property
    def delimiter_byte(self) -> bytes:
        return bytes([self.delimiter])

    def validate(self):
        """
        Checks option values that were set programmatically.
        :raises ValueError: describing the first invalid option
        """
        if self.data_bits not in (5, 6, 7, 8):
            raise ValueError("data_bits must be 5, 6, 7 or 8: %s" % self.data_bits)
        if self.parity not in self.parities:
            raise ValueError("parity must be one of %s: %s" % (", ".join(self.parities), self.parity))
        if self.stop_bits not in (1, 1.5, 2):
            raise ValueError("stop_bits must be 1, 1.5 or 2: %s" % self.stop_bits)
        if not 0 <= self.delimiter <= 255:
            raise ValueError("delimiter must be a byte value: %s" % self.delimiter)
        if self.parallelism < 1:
            raise ValueError("parallelism must be at least 1: %s" % self.parallelism)
        if self.failure_mode not in self.failure_modes:
            raise ValueError("failure_mode must be one of %s: %s" %
                             (", ".join(self.failure_modes), self.failure_mode))
        if self.read_size < 1:
            raise ValueError("read_size must be at least 1: %s" % self.read_size)
        for name in ('probe_timeout', 'probe_backoff', 'poll_interval'):
            if getattr(self, name) < 0:
                raise ValueError("%s must not be negative: %s" % (name, getattr(self, name)))
        return self

    @classmethod
    def from_conf(cls, conf: Section):
        config = cls()
        apply_conf(conf, config)
        return config.validate()

    @classmethod
    def from_file(cls, name=default_config_name, directory='.', user_directory='~'):
        """
        Loads the configuration files named after `name` from the directory.
        """
        conf = load_config(name, directory, user_directory=user_directory)
        return cls.from_conf(conf)

    def __repr__(self):
        return "BroadcastConfig(%s)" % ", ".join("%s=%r" % (k, v) for k, v in sorted(self.__dict__.items()))
