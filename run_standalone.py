#!/usr/bin/env python3
import sys
from pathlib import Path

# Add paths
sys.path.insert(0, str(Path(__file__).parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

# Import and run
from scoring_engine.main import app
from config.scoring_config import SERVICE_CONFIG
import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        app,
        host=SERVICE_CONFIG['host'],
        port=SERVICE_CONFIG['port'],
        log_level=SERVICE_CONFIG['log_level'].lower()
    )
