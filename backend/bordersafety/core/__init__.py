"""
Core Module Package

Configuration, storage handle, exception handling and HTTP middleware shared by
the routers, stores and CLI.
"""
