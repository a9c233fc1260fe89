"""
Command-line shell for Spica Writer.
Sends prompts, and saves or loads projects, without the desktop GUI.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

from spica_writer.commands import SpicaCommands, add_generated_tab
from spica_writer.exceptions import ConfigError, SpicaError
from spica_writer.llm.openai_client import DEFAULT_BASE_URL, DEFAULT_MODEL, OpenAIClient
from spica_writer.project.dialogs import PresetFileDialog
from spica_writer.project.store import DEFAULT_PROJECT_FILE, ProjectStore
from spica_writer.settings import load_config, setup_logging

logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()


def build_store(config: Dict) -> ProjectStore:
    """Create the project store from the 'storage' config section"""
    storage = config.get('storage', {})
    return ProjectStore(
        project_dir=storage.get('project_dir'),
        project_file=storage.get('project_file') or DEFAULT_PROJECT_FILE
    )


def build_client(config: Dict) -> OpenAIClient:
    """Create the OpenAI client from the 'openai' config section"""
    openai_config = config.get('openai', {})
    return OpenAIClient(
        api_key=openai_config.get('api_key'),
        base_url=openai_config.get('base_url') or DEFAULT_BASE_URL,
        model=openai_config.get('model') or DEFAULT_MODEL
    )


def print_summary(document, path: Optional[Path] = None):
    """Print a short overview of a project document"""
    print("=" * 60)
    print(f"Project: {document.metadata.title} (schema {document.version})")
    if path:
        print(f"File: {path}")
    print("=" * 60)
    print(f"  Scenes:      {len(document.scenes)}")
    print(f"  Draft tabs:  {len(document.draft_tabs)}")
    print(f"  Stars:       {len(document.stars)}")
    print(f"  Characters:  {len(document.characters)}")
    print(f"  Plan steps:  {len(document.plan_steps)}")
    print(f"  Idea bank:   {len(document.idea_bank.stored_draft_tab_ids)}")
    print(f"  Workbench:   {len(document.workbench.unassigned_draft_tab_ids)}")
    for scene in document.scenes.values():
        marker = "*" if scene.id == document.active_scene_id else " "
        print(f"  {marker} {scene.name} ({len(scene.draft_tab_ids)} tabs)")


def cmd_prompt(args, config: Dict) -> int:
    store = build_store(config)
    commands = SpicaCommands(build_client(config), store, PresetFileDialog())
    try:
        if args.scene:
            document = commands.load_project()
            if args.scene not in document.scenes:
                logger.error(f"Unknown scene id: {args.scene}")
                return 1
            response = commands.generate_scene_timeline(document, args.scene, args.user_prompt)
        else:
            response = commands.send_prompt(args.system, args.user_prompt)

        print(json.dumps(response.to_dict(), indent=2, ensure_ascii=False))

        if args.keep:
            document = commands.load_project()
            for tab in response.tabs:
                add_generated_tab(document, tab)
            path = commands.save_project(document)
            print(f"\n✓ Saved generated tab(s) to workbench in {path}")
    finally:
        commands.shutdown()
    return 0


def cmd_path(args, config: Dict) -> int:
    print(str(build_store(config).resolve_target_path()))
    return 0


def cmd_show(args, config: Dict) -> int:
    store = build_store(config)
    path = store.resolve_target_path(args.file)
    print_summary(store.load_or_default(path), path)
    return 0


def cmd_save_as(args, config: Dict) -> int:
    store = build_store(config)
    source = store.resolve_target_path(args.source)
    document = store.load_or_default(source)

    commands = SpicaCommands(None, store, PresetFileDialog(args.file))
    path = commands.save_project_as(document)
    if path is None:
        print("Save cancelled")
        return 0
    print(f"✓ Saved project to {path}")
    return 0


def cmd_open(args, config: Dict) -> int:
    store = build_store(config)
    commands = SpicaCommands(None, store, PresetFileDialog(args.file))
    document = commands.load_project_from_file()
    if document is None:
        print("Load cancelled")
        return 0
    print_summary(document, Path(args.file))
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description='Spica Writer - LLM-assisted scene planning')
    parser.add_argument('--config', type=str, default=None, help='Configuration file path')
    parser.add_argument('--log-level', type=str, default=None, help='Override logging level')
    subparsers = parser.add_subparsers(dest='command', required=True)

    p_prompt = subparsers.add_parser('prompt', help='Send a prompt and print the parsed timeline')
    p_prompt.add_argument('user_prompt', type=str, help='User prompt text')
    p_prompt.add_argument('--system', type=str, default='You are a helpful writing assistant.',
                          help='System prompt (ignored with --scene)')
    p_prompt.add_argument('--scene', type=str, default=None,
                          help='Scene id of the default project; builds the scene timeline prompt')
    p_prompt.add_argument('--keep', action='store_true',
                          help='Store the generated tab in the default project workbench')
    p_prompt.set_defaults(func=cmd_prompt)

    p_path = subparsers.add_parser('path', help='Print the default project path')
    p_path.set_defaults(func=cmd_path)

    p_show = subparsers.add_parser('show', help='Summarize a project file')
    p_show.add_argument('--file', type=str, default=None, help='Project file (default: default project)')
    p_show.set_defaults(func=cmd_show)

    p_save_as = subparsers.add_parser('save-as', help='Copy a project to a chosen file')
    p_save_as.add_argument('--source', type=str, default=None, help='Project to copy (default: default project)')
    p_save_as.add_argument('--file', type=str, default=None, help='Destination; omit to cancel')
    p_save_as.set_defaults(func=cmd_save_as)

    p_open = subparsers.add_parser('open', help='Load a chosen project file')
    p_open.add_argument('--file', type=str, default=None, help='Project file; omit to cancel')
    p_open.set_defaults(func=cmd_open)

    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    log_config = config.get('logging', {})
    setup_logging(args.log_level or log_config.get('level') or 'INFO', log_config.get('file'))

    try:
        return args.func(args, config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except SpicaError as e:
        logger.error(str(e))
        return 1


if __name__ == '__main__':
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
