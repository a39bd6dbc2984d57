import asyncio
import json
import logging
import argparse
import sys

from pydantic import ValidationError

from audit_engine.app_context import AppContext
from audit_engine.config_loader import load_config
from audit_engine.exceptions import AuditEngineError
from audit_engine.ruleset.models import OverrideDraft, RulesetContext

logger = logging.getLogger(__name__)


def load_json_file(path: str):
    """Load a JSON document, or None when it is missing or malformed."""
    logger.info(f"Loading {path}")
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.error(f"File not found: {path}")
        return None
    except json.JSONDecodeError as e:
        logger.error(f"Invalid JSON in {path}: {e}")
        return None


def context_from_args(args) -> RulesetContext:
    return RulesetContext(
        vertical=args.vertical,
        market=args.market,
        organization_id=args.organization_id,
        app_id=args.app_id,
    )


def run_audit(ctx: AppContext, args) -> int:
    """
    Audit one app. Metadata comes from --metadata-file (a JSON object keyed by
    locale) or, without it, from the configured metadata source.
    """
    context = context_from_args(args)
    locales = [loc.strip() for loc in args.locales.split(',') if loc.strip()]

    if args.metadata_file:
        metadata = load_json_file(args.metadata_file)
        if metadata is None:
            return 1
        snapshot = ctx.orchestrator.evaluate(context, locales, metadata, app_id=args.app_id)
    else:
        if ctx.metadata_source is None:
            logger.error("No --metadata-file given and no metadata_source.url configured")
            return 1
        if not args.app_id:
            logger.error("--app-id is required when fetching metadata")
            return 1
        snapshot = asyncio.run(ctx.orchestrator.run(args.app_id, context, locales, ctx.metadata_source))

    print(json.dumps(snapshot.model_dump(mode="json"), indent=2, sort_keys=True))
    return 0 if snapshot.is_complete else 2


def run_preview(ctx: AppContext, args) -> int:
    ruleset = ctx.merge_service.preview_merge(context_from_args(args))
    print(json.dumps(ruleset.model_dump(mode="json"), indent=2, sort_keys=True))
    return 0


def run_publish(ctx: AppContext, args) -> int:
    payload = load_json_file(args.overrides_file)
    if payload is None:
        return 1
    if not isinstance(payload, list):
        logger.error(f"{args.overrides_file} must contain a JSON list of overrides")
        return 1
    try:
        drafts = [OverrideDraft.model_validate(item) for item in payload]
    except ValidationError as e:
        logger.error(f"Invalid override in {args.overrides_file}: {e}")
        return 1
    version = ctx.merge_service.publish(context_from_args(args), drafts, notes=args.notes, author=args.author)
    logger.info(f"Published version {version}")
    return 0


def run_rollback(ctx: AppContext, args) -> int:
    version = ctx.merge_service.rollback(context_from_args(args), args.to_version, author=args.author)
    logger.info(f"Rolled back; recorded as version {version}")
    return 0


COMMANDS = {
    'audit': run_audit,
    'preview': run_preview,
    'publish': run_publish,
    'rollback': run_rollback,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Metadata Audit Driver")
    parser.add_argument('--config', type=str, default='config.yaml', help='Path to config.yaml')

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--vertical', type=str, default=None)
    common.add_argument('--market', type=str, default=None)
    common.add_argument('--organization-id', type=str, default=None)
    common.add_argument('--app-id', type=str, default=None)
    common.add_argument('--author', type=str, default='cli')

    sub = parser.add_subparsers(dest='command', required=True)

    audit = sub.add_parser('audit', parents=[common], help='Run an audit and print the snapshot')
    audit.add_argument('--locales', type=str, required=True, help='Comma-separated locale list, e.g. en-US,es-US')
    audit.add_argument('--metadata-file', type=str, default=None,
                       help='JSON object of locale -> {title, subtitle, description}')

    sub.add_parser('preview', parents=[common], help='Print the merged ruleset for a context')

    publish = sub.add_parser('publish', parents=[common], help='Publish overrides from a JSON list')
    publish.add_argument('--overrides-file', type=str, required=True)
    publish.add_argument('--notes', type=str, default=None)

    rollback = sub.add_parser('rollback', parents=[common], help='Restore a published version')
    rollback.add_argument('--to-version', type=int, required=True)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)

    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format=config.logging.format
    )
    logger.info(f"Metadata audit driver running '{args.command}'")

    ctx = AppContext.build(config)
    try:
        return COMMANDS[args.command](ctx, args)
    except ValidationError as e:
        logger.error(f"Invalid input: {e}")
        return 1
    except AuditEngineError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
