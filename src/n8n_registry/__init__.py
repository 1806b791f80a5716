"""
n8n Registry Refresh

Builds a local, greppable cache of n8n node metadata by combining the
remote node registries with the node packages installed from npm:
fetch → resolve versions → normalize → slim properties → write

Architecture:
- fetcher/http: paginated registry client
- installer: scoped npm install of the node packages
- resolver/: dynamic (node) and static (source text) version extraction
- normalizer/slimmer: index projection and property schema reduction
- writer: atomic artifact output
- pipeline/cli: orchestration and the n8n-registry-refresh command
"""

__version__ = "1.0.0"
