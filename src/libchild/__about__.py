"""Metadata for libchild package."""

__title__ = "libchild"
__package_name__ = "libchild"
__version__ = "0.1.0"
__description__ = "Typed, composable child-process invocations for Python"
__email__ = "maintainers@libchild.dev"
__author__ = "libchild contributors"
__github__ = "https://github.com/libchild/libchild"
__docs__ = "https://github.com/libchild/libchild#readme"
__tracker__ = "https://github.com/libchild/libchild/issues"
__pypi__ = "https://pypi.org/project/libchild/"
__license__ = "MIT"
__copyright__ = "Copyright 2026- libchild contributors"
