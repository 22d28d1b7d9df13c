"""
Forge Client module.

HTTP client and `forge` command line for the forge build server.
"""
