"""ComfyUI MCP tests

Unit tests for the workflow tool engine and its outer surfaces.

Test Structure:
- test_graph_normalizer.py - graph shape classification and normalization
- test_tool_config_loader.py - tool definition parsing
- test_registry_binding.py - tool/workflow binding
- test_injector.py - field resolution and parameter injection
- test_schema_projection.py - input schema projection
- test_service.py - list/invoke service
- test_comfyui_client.py - ComfyUI HTTP client (mocked transport)
- test_storage.py, test_config.py, test_mcp_server.py, test_cli.py

Usage:
    pytest tests/ -v
    pytest tests/ -k "injector" -v
"""
