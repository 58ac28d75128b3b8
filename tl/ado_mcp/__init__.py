"""Azure DevOps MCP adapter package.

This package exposes Azure DevOps work items, repositories, pipelines, releases,
wikis, boards and users as Model Context Protocol tools over stdio or HTTP.
"""

__version__ = '0.2.0'
__author__ = 'TechniumLabs'
__description__ = 'Azure DevOps MCP adapter exposing Azure DevOps operations as MCP tools'
