"""
Application Support

Settings and process-level setup shared by the library and its command line tools.

Key Components:
- config.py: Configuration management using Pydantic settings
- cli.py: Logging and error reporting setup for command line entry points
"""
