#!/usr/bin/env python3
"""Tool Surgeon - template-first lead magnet generation.

Usage:
    python main.py build --prompt "ROI calculator for solar panel installers"
    python main.py build --prompt "..." --business-type "solar installer" --industry energy
    python main.py build --prompt "..." --output ./out --verbose
    python main.py templates
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from core.orchestrator import PipelineOrchestrator
from core.state import PipelineRequest
from utils.baseline_store import list_baselines
from utils.folder_naming import get_output_dir


def _configure_logging(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def write_result(result, output_dir):
    """Write the artifact source and a stages.json record into output_dir."""
    artifact = result["artifact"]
    os.makedirs(output_dir, exist_ok=True)

    artifact_path = os.path.join(output_dir, os.path.basename(artifact["filename"]))
    with open(artifact_path, "w", encoding="utf-8", newline="") as f:
        f.write(artifact["sourceText"])

    record = {k: v for k, v in artifact.items() if k != "sourceText"}
    record["stages"] = result["stages"]
    with open(os.path.join(output_dir, "stages.json"), "w", encoding="utf-8") as f:
        json.dump(record, f, indent=2)
    return artifact_path


def cmd_build(args):
    """Run the full pipeline and write the artifact to disk."""
    request = PipelineRequest(
        user_prompt=args.prompt.strip(),
        business_type=args.business_type,
        industry=args.industry,
    )
    orchestrator = PipelineOrchestrator()
    result = asyncio.run(orchestrator.execute(request))

    if not result["success"]:
        print(f"\nFailed at stage: {result['failing_stage']}", file=sys.stderr)
        print(f"Error kind:      {result['error_kind']}", file=sys.stderr)
        print(f"Message:         {result['message']}", file=sys.stderr)
        return 1

    artifact = result["artifact"]
    output_dir = args.output or get_output_dir(artifact["title"] or request.user_prompt)
    path = write_result(result, output_dir)

    print(f"\nTitle:    {artifact['title']}")
    print(f"Template: {artifact['type']}")
    print(f"Output:   {path}")
    print(f"Patches:  {len(artifact['patches'])}")
    for name, stage in result["stages"].items():
        marker = f"fallback ({stage['fallback_reason']})" if stage["used_fallback"] else "primary"
        print(f"  {name:12s} {marker}")
    return 0


def cmd_templates(args):
    print("Available baselines:")
    for entry in list_baselines():
        print(f"  {entry['type']:12s} {entry['title']} ({entry['filename']})")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="surgeon",
        description="Template-first lead magnet generation pipeline",
    )
    subparsers = parser.add_subparsers(dest="command")

    build_parser = subparsers.add_parser("build", help="Run the generation pipeline")
    build_parser.add_argument("--prompt", required=True, help="Natural language business description")
    build_parser.add_argument("--business-type", help="Business type hint")
    build_parser.add_argument("--industry", help="Industry hint")
    build_parser.add_argument("--output", help="Output directory (default: generated/<name>)")
    build_parser.add_argument("--verbose", action="store_true", help="Debug logging")

    subparsers.add_parser("templates", help="List available baseline templates")

    args = parser.parse_args(argv)

    if args.command == "build":
        _configure_logging(args.verbose)
        return cmd_build(args)
    if args.command == "templates":
        return cmd_templates(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
