"""
Semantic versioning for the Nova GFX interactive runtime.
"""

__version__ = "0.4.0"

# Version of the serialized node-graph / action document format
GRAPH_SCHEMA_VERSION = "1.0.0"
