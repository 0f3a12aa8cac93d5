"""
Provides project-level commands. Commands are run via `python setup.py <command> [args]`

Commands available:

- monitor: detects a device on the local serial ports and logs its messages
"""

from setuptools import setup, Command

import os


class RunInRootCommand(Command):
    user_options = []

    def initialize_options(self):
        self.cwd = None

    def finalize_options(self):
        self.cwd = os.getcwd()

    def run(self):
        assert os.getcwd() == self.cwd, 'Must be in package root: %s' % self.cwd
        self.runcmd()

    def runcmd(self):
        pass


class MonitorCommand(RunInRootCommand):
    description = "waits for a device matching the pattern in serialbroadcast.cfg and logs its messages"

    def runcmd(self):
        from serialbroadcast.broadcast import monitor
        monitor(self.cwd)


setup(
    name='serialbroadcast',
    version='0.0.1',
    description='Delimited message framing, prefix dispatch and device auto-detection for serial ports.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['serialbroadcast', 'serialbroadcast.config', 'serialbroadcast.support',
              'serialbroadcast.transport'],
    package_data={'serialbroadcast.config': ['*.cfg']},
    install_requires=[
        'pyserial>=3.0',
        'configobj>=5.0.9',
    ],
    extras_require={
        'test': ['pytest', 'PyHamcrest', 'timeout-decorator'],
    },
    zip_safe=False,
    cmdclass={
        'monitor': MonitorCommand,
    }
)
