#!/usr/bin/env python3
"""
Craft Architect - Main Entry Point

Plans crafting projects: expands recipes, then works out where to buy the
materials across the worlds of a data center.
"""

import argparse
import sys
from typing import List, Optional

from logging_config import get_logger

from engine.config import ConfigError, ConfigManager
from engine.errors import PlannerError
from engine.market_models import RecommendationMode
from engine.recipe_tree import BuildTarget
from services.planner import PlanningResult, PlanningService
from store.db import DatabaseManager
from utils.paths import init_app_paths


def parse_target(text: str) -> BuildTarget:
    """Parse ``ITEM_ID[:QTY][:hq]`` into a build target."""
    parts = text.split(':')
    try:
        item_id = int(parts[0])
        quantity = int(parts[1]) if len(parts) > 1 and parts[1] else 1
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid target '{text}', expected ITEM_ID[:QTY][:hq]")
    hq = len(parts) > 2 and parts[2].lower() == 'hq'
    if quantity < 1:
        raise argparse.ArgumentTypeError(f"quantity must be positive in '{text}'")
    return BuildTarget(item_id=item_id, name="", quantity=quantity, hq_required=hq)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="craft-architect", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--config", help="path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="build a plan and a shopping list")
    plan.add_argument("targets", nargs="+", type=parse_target, help="ITEM_ID[:QTY][:hq]")
    plan.add_argument("--dc", dest="data_center", help="data center to shop on")
    plan.add_argument("--world", dest="home_world", help="home world")
    plan.add_argument("--split", action="store_true", help="allow multi-world split purchases")
    plan.add_argument("--mode", choices=[m.value for m in RecommendationMode], help="world ordering")
    plan.add_argument("--no-refresh", action="store_true", help="use cached market data only")
    plan.add_argument("--exclude", action="append", default=[], help="blacklist a world (repeatable)")

    purge = sub.add_parser("purge", help="drop stale market snapshots")
    purge.add_argument("--hours", type=float, help="maximum snapshot age")
    return parser


def print_result(result: PlanningResult, limit: int) -> None:
    print(f"{result.plan.name} ({result.plan.data_center})")
    for root in result.plan.root_items:
        for node in root.walk():
            depth = 0
            parent = node.parent
            while parent is not None:
                depth += 1
                parent = parent.parent
            print(f"  {'  ' * depth}{node.name} x{node.quantity} [{node.source.value}]")

    print("\nShopping list:")
    for shopping in result.shopping:
        if shopping.recommended_split:
            parts = ", ".join(f"{p.world_name} x{p.quantity_to_buy}" for p in shopping.recommended_split)
            print(f"  {shopping.name} x{shopping.quantity_needed}: split {parts} = {shopping.split_total_cost:,} gil")
        elif shopping.recommended_world is not None:
            world = shopping.recommended_world
            print(f"  {shopping.name} x{shopping.quantity_needed}: {world.world_name} = {world.total_cost:,} gil")
        else:
            reason = shopping.error or f"short by {shopping.stock_shortfall}"
            print(f"  {shopping.name} x{shopping.quantity_needed}: no recommendation ({reason})")
        for option in shopping.world_options[:limit]:
            flag = "" if option.has_sufficient_stock else f" (short {option.shortfall_quantity})"
            print(f"      {option.world_name}: {option.total_cost:,} gil{flag}")

    if result.route is not None and not result.route.empty:
        print("\nBy world:")
        print(result.route.to_string(index=False))
    print(f"\nEstimated total: {result.total_cost:,.0f} gil")


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point."""
    args = build_parser().parse_args(argv)

    try:
        init_app_paths()
        config_manager = ConfigManager(args.config)
        config = config_manager.load_config()
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    log = get_logger(__name__, config)
    for problem in config_manager.validate_config():
        log.warning("Config: %s", problem)

    db_manager = DatabaseManager(config)
    db_manager.initialize_database()
    try:
        if args.command == "purge":
            hours = args.hours if args.hours is not None else config_manager.get_max_age_hours()
            removed = db_manager.purge_stale(hours)
            print(f"Removed {removed} snapshots")
            return 0

        if args.data_center:
            config_manager.set('market.data_center', args.data_center)
        if args.home_world:
            config_manager.set('market.home_world', args.home_world)
        if args.split:
            config_manager.set('analysis.enable_split_world', True)
        if args.mode:
            config_manager.set('analysis.recommendation_mode', args.mode)
        if args.exclude:
            config_manager.set('market.blacklisted_worlds', config_manager.get_blacklisted_worlds() + args.exclude)

        if not config_manager.get('market.data_center'):
            print("error: no data center configured (use --dc)", file=sys.stderr)
            return 2

        log.info("Starting Craft Architect")
        service = PlanningService(config, db=db_manager)
        result = service.run(args.targets, refresh=not args.no_refresh)
        print_result(result, config_manager.get('analysis.max_worlds_per_item', 5))
        return 0
    except PlannerError as e:
        log.error("Planning stopped: %s", e)
        return 1
    finally:
        db_manager.close()


if __name__ == "__main__":
    sys.exit(main())
