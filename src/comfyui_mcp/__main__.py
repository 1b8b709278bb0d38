"""Entry point for ``python -m comfyui_mcp``."""

from comfyui_mcp.cli import main

if __name__ == "__main__":
    main()
