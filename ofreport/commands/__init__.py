"""
This __init__.py file makes the 'commands' directory a Python package.

Each module defines a handler for one or more CLI commands.
"""
