"""Main entry point for the Email Companion application."""

import argparse
import asyncio
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from email_companion.ai import AIInvoker, AIProvider
from email_companion.database import DatabaseManager, TemplateStoreError
from email_companion.gmail import GmailMailClient
from email_companion.logger import get_logger, sanitize_for_log
from email_companion.manager import PipelineManager
from email_companion.models import AnalysisKind, ContextProfile, PipelineResult
from email_companion.settings import (COMMUNICATION_STYLES, DETAIL_LEVELS, SettingsStore,
                                      SettingsValidationError, UserSettings)

logger = get_logger(__name__)
console = Console()


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Email Companion - AI replies and summaries for your inbox'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    for name, help_text in (
        ('one-shot', 'Draft a reply to the active email'),
        ('smart-shot', 'Draft a reply using the email and its attachments'),
    ):
        shot = subparsers.add_parser(name, help=help_text)
        shot.add_argument(
            '--template', '-t',
            dest='templates',
            action='append',
            default=[],
            help='Template id to apply, in order (repeatable)'
        )
        shot.add_argument('--notes', help='One-time instructions for this run')
        shot.add_argument('--reply-all', action='store_true', help='Address the reply to all recipients')
        shot.add_argument('--no-deliver', action='store_true', help='Print the result without creating a reply')
        shot.add_argument('--preset', help='Name or id of a saved preset, applied before any --template')

    analyze = subparsers.add_parser('analyze-file', help='Analyze a local document or image')
    analyze.add_argument('path', type=Path)
    analyze.add_argument(
        '--kind',
        choices=[k.value for k in AnalysisKind],
        default=AnalysisKind.SUMMARIZE.value,
        help='Type of analysis (default: summarize)'
    )

    templates = subparsers.add_parser('templates', help='List, export or import prompt templates')
    templates.add_argument('--export', dest='export_file', type=Path, help='Write user templates to a JSON file')
    templates.add_argument('--import', dest='import_file', type=Path, help='Add templates from a JSON file')

    presets = subparsers.add_parser('presets', help='Manage saved template combinations')
    preset_commands = presets.add_subparsers(dest='preset_command')
    preset_commands.add_parser('list', help='Show saved presets')
    save_preset = preset_commands.add_parser('save', help='Save an ordered list of templates')
    save_preset.add_argument('name')
    save_preset.add_argument('--template', '-t', dest='templates', action='append', default=[], required=True)
    delete_preset = preset_commands.add_parser('delete', help='Delete a preset')
    delete_preset.add_argument('preset')

    settings = subparsers.add_parser('settings', help='Show or change AI provider and context settings')
    settings.add_argument('--provider', choices=[p.value for p in AIProvider])
    settings.add_argument('--model')
    settings.add_argument('--endpoint')
    settings.add_argument('--name')
    settings.add_argument('--role')
    settings.add_argument('--company')
    settings.add_argument('--industry')
    settings.add_argument('--style', choices=[s for s in COMMUNICATION_STYLES if s])
    settings.add_argument('--detail', choices=[d for d in DETAIL_LEVELS if d])
    settings.add_argument('--notes', help='Custom notes added to every system prompt')
    settings.add_argument('--personal', action=argparse.BooleanOptionalAction, default=None,
                          help='Include the personal context block')
    settings.add_argument('--organization-file', type=Path, help='Read organization context from a file')
    settings.add_argument('--organization', action=argparse.BooleanOptionalAction, default=None,
                          help='Include the organization context block')

    subparsers.add_parser('test-connection', help='Check the configured AI provider')
    return parser.parse_args(argv)


def find_preset(db_manager: DatabaseManager, name_or_id: str) -> dict:
    """Return the preset with this id or name.

    Raises:
        TemplateStoreError: If no preset matches
    """
    for preset in db_manager.list_presets():
        if name_or_id in (preset['id'], preset['name']):
            return preset
    raise TemplateStoreError(f"Preset not found: {name_or_id}")


def apply_settings_changes(current: UserSettings, args: argparse.Namespace) -> UserSettings:
    """Return a copy of `current` with the values given on the command line."""
    ai_changes = {k: getattr(args, k) for k in ('provider', 'model', 'endpoint') if getattr(args, k) is not None}
    personal_changes = {
        field_name: getattr(args, arg)
        for arg, field_name in (
            ('name', 'name'),
            ('role', 'role'),
            ('company', 'company'),
            ('industry', 'industry'),
            ('style', 'communication_style'),
            ('detail', 'detail_level'),
            ('notes', 'custom_notes'),
            ('personal', 'enabled'),
        )
        if getattr(args, arg) is not None
    }
    organization_changes = {}
    if args.organization_file is not None:
        organization_changes['content'] = args.organization_file.read_text(encoding='utf-8')
    if args.organization is not None:
        organization_changes['enabled'] = args.organization

    return UserSettings(
        ai=replace(current.ai, **ai_changes),
        profile=ContextProfile(
            personal=replace(current.profile.personal, **personal_changes),
            organization=replace(current.profile.organization, **organization_changes),
        )
    )


def print_settings(settings: UserSettings) -> None:
    table = Table(title='Settings')
    table.add_column('Setting')
    table.add_column('Value')
    table.add_row('provider', settings.ai.provider)
    table.add_row('model', settings.ai.model)
    table.add_row('endpoint', settings.ai.endpoint)
    for key, value in asdict(settings.profile.personal).items():
        table.add_row(f"personal.{key}", str(value))
    table.add_row('organization.enabled', str(settings.profile.organization.enabled))
    table.add_row('organization.content', f"{len(settings.profile.organization.content)} chars")
    console.print(table)


def list_presets(db_manager: DatabaseManager) -> None:
    table = Table(title='Presets')
    table.add_column('ID')
    table.add_column('Name')
    table.add_column('Templates')
    for preset in db_manager.list_presets():
        table.add_row(preset['id'], preset['name'], ', '.join(preset['template_ids']))
    console.print(table)


def build_manager(db_manager: DatabaseManager, settings_store: SettingsStore) -> PipelineManager:
    settings = settings_store.load()
    logger.debug(f"Loaded settings: {sanitize_for_log(asdict(settings.ai))}")
    return PipelineManager(
        mail_client=GmailMailClient(),
        invoker=AIInvoker(settings.ai),
        template_store=db_manager,
        context_profile=settings.profile
    )


def print_result(result: PipelineResult) -> None:
    for summary in result.attachment_summaries:
        status = 'ok' if summary.success else 'error'
        console.print(f"[bold]{summary.filename}[/bold] ({summary.type}, {status})")
    if result.content:
        console.print(result.content, markup=False, highlight=False)
    if result.error:
        console.print(f"[red]{result.error}[/red]")


def list_templates(db_manager: DatabaseManager) -> None:
    table = Table(title='Prompt templates')
    table.add_column('ID')
    table.add_column('Name')
    table.add_column('Category')
    table.add_column('Uses', justify='right')
    for template in db_manager.list_templates():
        name = f"* {template.name}" if template.is_favorite else template.name
        table.add_row(template.id, name, str(template.category), str(template.usage_count))
    console.print(table)


async def run(
    args: argparse.Namespace,
    db_manager: Optional[DatabaseManager] = None,
    settings_store: Optional[SettingsStore] = None,
) -> int:
    settings_store = settings_store or SettingsStore()

    if args.command == 'settings':
        current = settings_store.load()
        try:
            changed = apply_settings_changes(current, args)
            if changed == current:
                print_settings(current)
                return 0
            saved = settings_store.save(changed)
        except (OSError, SettingsValidationError) as e:
            logger.error(f"Could not save settings: {e}")
            return 1
        print_settings(saved)
        return 0

    db_manager = db_manager or DatabaseManager()

    if args.command == 'templates':
        try:
            if args.import_file:
                count = db_manager.import_templates(args.import_file.read_text(encoding='utf-8'))
                console.print(f"Imported {count} templates")
            if args.export_file:
                args.export_file.write_text(db_manager.export_templates(), encoding='utf-8')
                console.print(f"Exported templates to {args.export_file}")
        except (OSError, TemplateStoreError) as e:
            logger.error(f"Template operation failed: {e}")
            return 1
        if not (args.import_file or args.export_file):
            list_templates(db_manager)
        return 0

    if args.command == 'presets':
        try:
            if args.preset_command == 'save':
                preset_id = db_manager.save_preset(args.name, args.templates)
                console.print(f"Saved preset {args.name} ({preset_id})")
            elif args.preset_command == 'delete':
                db_manager.delete_preset(find_preset(db_manager, args.preset)['id'])
                console.print(f"Deleted preset {args.preset}")
            else:
                list_presets(db_manager)
        except TemplateStoreError as e:
            logger.error(f"Preset operation failed: {e}")
            return 1
        return 0

    template_ids = list(args.templates) if args.command in ('one-shot', 'smart-shot') else []
    if getattr(args, 'preset', None):
        try:
            template_ids = find_preset(db_manager, args.preset)['template_ids'] + template_ids
        except TemplateStoreError as e:
            logger.error(str(e))
            return 1

    manager = build_manager(db_manager, settings_store)

    if args.command == 'test-connection':
        result = await manager.test_connection()
        console.print(result.content if result.success else f"[red]{result.error}[/red]")
        return 0 if result.success else 1

    if args.command == 'analyze-file':
        result = await manager.analyze_standalone_file(args.path, AnalysisKind(args.kind))
        if result.success:
            console.print(result.content, markup=False, highlight=False)
            return 0
        console.print(f"[red]{result.error}[/red]")
        return 1

    run_shot = manager.run_smart_shot if args.command == 'smart-shot' else manager.run_one_shot
    result = await run_shot(
        template_ids,
        quick_notes=args.notes,
        reply_all=args.reply_all,
        deliver=not args.no_deliver
    )
    print_result(result)
    if result.delivered:
        logger.info("Reply draft created")
    return 0 if result.success else 1


def main(argv=None) -> Optional[int]:
    """Main entry point for the application."""
    try:
        args = parse_args(argv)
        return asyncio.run(run(args))
    except Exception as e:
        logger.error(f"Error running email companion: {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
