"""
Forge Admin module.

`forge-admin` command line for maintaining the build history database.
"""
