# Sphinx configuration file

import os
import sys
sys.path.insert(0, os.path.abspath('../src'))

from workflow_engine import __version__  # noqa: E402

project = 'Workflow Engine'
author = 'Workflow Engine contributors'
release = __version__

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx.ext.intersphinx',
    'sphinx_autodoc_typehints',
]

exclude_patterns = ['_build']

html_theme = 'sphinx_rtd_theme'

# Settings classes carry long pydantic field descriptions; show them in source order.
autodoc_default_options = {
    'members': True,
    'member-order': 'bysource',
    'special-members': '__init__',
    'exclude-members': '__weakref__, model_config, model_fields, model_computed_fields',
}
autodoc_typehints = 'description'

napoleon_google_docstring = True
napoleon_numpy_docstring = False

intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'pydantic': ('https://docs.pydantic.dev/latest', None),
    'cachetools': ('https://cachetools.readthedocs.io/en/latest', None),
}
