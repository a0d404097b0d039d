#!/usr/bin/env python3
"""
Simple script to run a single poll cycle of one pipeline.
"""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# Add project root to PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.config import ConfigurationError, load_pipelines_config
from core.pipeline_orchestrator import run_pipeline_once


async def run_specific_pipeline(config_file: str, pipeline_name: str) -> int:
    """Run one poll cycle of a pipeline by name."""
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s"
    )
    logger = logging.getLogger(__name__)

    pipelines_cfg = load_pipelines_config(config_file)
    if not pipelines_cfg:
        logger.error(f"No pipelines found in {config_file}")
        return 1

    # Find the specific pipeline
    target_pipeline = next((p for p in pipelines_cfg if p.get("name") == pipeline_name), None)
    if not target_pipeline:
        logger.error(f"Pipeline '{pipeline_name}' not found in {config_file}")
        available = [p.get("name", "unnamed") for p in pipelines_cfg]
        logger.error(f"Available pipelines: {available}")
        return 1

    try:
        await run_pipeline_once(target_pipeline)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    return 0


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python run_pipeline.py <config_file> <pipeline_name>")
        print("Example: python run_pipeline.py pipelines.yml openwhisk")
        sys.exit(1)

    sys.exit(asyncio.run(run_specific_pipeline(sys.argv[1], sys.argv[2])))
