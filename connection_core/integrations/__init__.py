"""
Bundled integrations.

Each module declares its connection definitions at module level;
``ConnectionRegistry.discover("connection_core.integrations")`` registers them.
"""
