"""
Provides project-level commands. Commands are run via `python setup.py <command> [args]`

Commands available:

- apidoc: regenerate reST docs for inline pydoc comments
"""

from setuptools import setup, Command

import os


class ApiDocCommand(Command):
    description = "regenerates the API docs"
    user_options = []

    def initialize_options(self):
        self.cwd = None

    def finalize_options(self):
        self.cwd = os.getcwd()

    def run(self):
        assert os.getcwd() == self.cwd, 'Must be in package root: %s' % self.cwd
        os.system('"sphinx-apidoc" -f -e -o docs/apidoc src/gridlink')


setup(
    name='gridlink',
    version='0.0.1',
    description='Discovery, session negotiation and event dispatch for serialosc grid controllers.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=['gridlink', 'gridlink.config', 'gridlink.support'],
    python_requires='>=3.7',
    install_requires=[
        'python-osc>=1.7',
        'configobj>=5.0.6',
        'zeroconf>=0.28',
    ],
    extras_require={
        'test': ['pytest', 'PyHamcrest>=2.0', 'timeout-decorator'],
    },
    zip_safe=False,
    cmdclass={
        'apidoc': ApiDocCommand,
    }
)
