import argparse
import json
import logging
import os
import sys

from pathlib import Path

from es3.crypto import DEFAULT_PASSWORD
from es3.crypto import decrypt_es3_to_json
from es3.crypto import decrypt_es3_to_yaml
from es3.crypto import encrypt_json_to_es3
from es3.players import ITEM_TABLES
from es3.players import collect_player_stats
from es3.players import group_items
from es3.players import run_stats
from es3.steam import fetch_steam_profile
from es3.errors import SteamProfileError


logger = logging.getLogger(__name__)


PASSWORD_ENV = "ES3_PASSWORD"


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-in",
        "--input",
        required=True,
        help="Path to input file",
    )

    parser.add_argument(
        "-p",
        "--password",
        default=os.environ.get(PASSWORD_ENV, DEFAULT_PASSWORD),
        help=(
            f"Save password (default: ${PASSWORD_ENV} or the game's "
            "password)"
        ),
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )


def add_decrypt_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--strict-padding",
        action="store_true",
        help="Reject saves whose PKCS7 padding bytes are not all equal",
    )

    parser.add_argument(
        "--keep-unknown-wrappers",
        action="store_true",
        help="Keep .NET type wrappers without a value instead of nulling them",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="es3crypt",
        description=(
            "Decrypt R.E.P.O. .es3 saves to readable JSON or YAML.\n"
            "Backup your save file before editing it."
        ),
        formatter_class=argparse.RawTextHelpFormatter,
    )

    sub = parser.add_subparsers(dest="cmd", required=True)

    p_dec = sub.add_parser(
        "decrypt",
        help="Decrypt a .es3 save to readable JSON or YAML.",
        formatter_class=argparse.RawTextHelpFormatter,
    )

    add_common_arguments(p_dec)
    add_decrypt_arguments(p_dec)

    p_dec.add_argument(
        "-out",
        "--output",
        help="Path to output file (default: <input>.json or <input>.yaml)",
    )

    p_dec.add_argument(
        "-f",
        "--format",
        choices=("json", "yaml"),
        default="json",
        help="Output format (default: json)",
    )

    p_dec.add_argument(
        "--pretty",
        action="store_true",
        help="Indent JSON output",
    )

    p_dec.epilog = (
        "Examples:\n"
        "  es3crypt decrypt -in SaveFile.es3\n"
        "  es3crypt decrypt -in SaveFile.es3 -out save.yaml -f yaml\n"
        "If padding errors appear, the save was written with another "
        "password."
    )

    p_enc = sub.add_parser(
        "encrypt",
        help="Encrypt a JSON document back to a .es3 save.",
        formatter_class=argparse.RawTextHelpFormatter,
    )

    add_common_arguments(p_enc)

    p_enc.add_argument(
        "-out", "--output", help="Path to output .es3 (default: <input>.es3)"
    )

    p_players = sub.add_parser(
        "players",
        help="Show run stats and per-player stats of a .es3 save.",
        formatter_class=argparse.RawTextHelpFormatter,
    )

    add_common_arguments(p_players)
    add_decrypt_arguments(p_players)

    p_players.add_argument(
        "--steam",
        action="store_true",
        help="Look up each player's Steam community profile name",
    )

    p_items = sub.add_parser(
        "items",
        help="Show the item inventory of a .es3 save by category.",
        formatter_class=argparse.RawTextHelpFormatter,
    )

    add_common_arguments(p_items)
    add_decrypt_arguments(p_items)

    p_items.add_argument(
        "--all",
        action="store_true",
        help="Also list items that were never bought or found",
    )

    return parser


def print_players(save: dict, with_steam: bool) -> None:
    stats = run_stats(save)

    if stats:
        print("run stats:")

        for key, value in stats.items():
            print(f"  {key}: {value}")

    players = collect_player_stats(save)

    if not players:
        print("no players found")
        return

    for steam_id, player_stats in players.items():
        name = ""

        if with_steam:
            try:
                name = fetch_steam_profile(steam_id).steam_id
            except SteamProfileError as e:
                logger.warning("%s", e)

        print(f"{steam_id} {name}".rstrip() + ":")

        for table, value in player_stats.items():
            print(f"  {table}: {value}")


def print_items(save: dict, show_all: bool) -> None:
    for category, items in group_items(save).items():
        lines = []

        for item_name, entry in items.items():
            counters = [entry[field] for field in ITEM_TABLES]

            if not show_all and not any(counters):
                continue

            lines.append(
                f"  {item_name}: count={entry['count']} "
                f"purchased={entry['purchased']} "
                f"purchased_total={entry['purchased_total']} "
                f"upgrades={entry['upgrades']}"
            )

            for instance, level in entry["stat_battery"].items():
                lines.append(f"    {instance}: battery {level}")

        if lines:
            print(f"{category}:")
            print("\n".join(lines))


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)

    try:
        if args.cmd == "decrypt":
            in_path = Path(args.input)
            out_path = (
                Path(args.output)
                if args.output
                else in_path.with_suffix(f".{args.format}")
            )

            if args.format == "yaml":
                out_path.write_bytes(
                    decrypt_es3_to_yaml(
                        in_path,
                        args.password,
                        strict_padding=args.strict_padding,
                        keep_unknown_wrappers=args.keep_unknown_wrappers,
                    )
                )
            else:
                json_text = decrypt_es3_to_json(
                    in_path,
                    args.password,
                    strict_padding=args.strict_padding,
                    keep_unknown_wrappers=args.keep_unknown_wrappers,
                )

                if args.pretty:
                    json_text = json.dumps(
                        json.loads(json_text),
                        ensure_ascii=False,
                        indent=2,
                    )

                out_path.write_text(json_text, encoding="utf-8")

            print(f"wrote {out_path}")

        elif args.cmd == "encrypt":
            in_path = Path(args.input)
            out_path = (
                Path(args.output)
                if args.output
                else in_path.with_suffix(".es3")
            )

            es3_bytes = encrypt_json_to_es3(in_path, args.password)
            out_path.write_bytes(es3_bytes)
            print(f"wrote {out_path}")

        elif args.cmd == "players":
            save = json.loads(
                decrypt_es3_to_json(
                    Path(args.input),
                    args.password,
                    strict_padding=args.strict_padding,
                    keep_unknown_wrappers=args.keep_unknown_wrappers,
                )
            )

            print_players(save, args.steam)

        elif args.cmd == "items":
            save = json.loads(
                decrypt_es3_to_json(
                    Path(args.input),
                    args.password,
                    strict_padding=args.strict_padding,
                    keep_unknown_wrappers=args.keep_unknown_wrappers,
                )
            )

            print_items(save, args.all)

        else:
            parser.error("unknown command")
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
