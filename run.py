#!/usr/bin/env python3
"""
TPM Workflow Engine Entry Point

Starts the FastAPI server with settings taken from TPM_* environment variables.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from tpm_workflows.api import run_server
from tpm_workflows.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting TPM Workflow Engine...")
    print(f"Storage: {config.database_url}")
    print(f"API available at: http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")
    print()

    try:
        run_server(debug=config.api_debug)
    except KeyboardInterrupt:
        print("\nShutting down TPM Workflow Engine...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
