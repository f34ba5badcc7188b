from typing import Any
from typing import Dict


# Root keys the stat tables may be nested under
SECTION_KEYS = ("value", "dictionaryOfDictionaries")

HEALTH_TABLE = "playerHealth"
RUN_STATS_TABLE = "runStats"


def save_data(save: Dict[str, Any]) -> Dict[str, Any]:
    """Returns the mapping holding the stat tables of a normalized save."""

    for key in SECTION_KEYS:
        data = save.get(key)

        if isinstance(data, dict):
            return data

    return save


def run_stats(save: Dict[str, Any]) -> Dict[str, Any]:
    stats = save_data(save).get(RUN_STATS_TABLE)

    if not isinstance(stats, dict):
        return {}

    return stats


def collect_player_stats(save: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """ Group per-player entries of every stat table by Steam ID

    Players are the keys of the 'playerHealth' table. Any table that is a
    mapping with an entry for that player contributes it under the table
    name.

    """

    data = save_data(save)
    health = data.get(HEALTH_TABLE)

    if not isinstance(health, dict):
        return {}

    players = {}

    for steam_id in health:
        players[steam_id] = {
            table: entries[steam_id]
            for table, entries in data.items()
            if isinstance(entries, dict) and steam_id in entries
        }

    return players


ITEM_PREFIX = "Item "

ITEM_CATEGORIES = {
    "Carts": ("Cart Medium", "Cart Small"),
    "Drones": (
        "Drone Battery",
        "Drone Feather",
        "Drone Indestructible",
        "Drone Torque",
        "Drone Zero Gravity",
    ),
    "Grenades": (
        "Grenade Duct Taped",
        "Grenade Explosive",
        "Grenade Human",
        "Grenade Shockwave",
        "Grenade Stun",
    ),
    "Guns": ("Gun Handgun", "Gun Shotgun", "Gun Tranq"),
    "Health": (
        "Health Pack Large",
        "Health Pack Medium",
        "Health Pack Small",
    ),
    "Melee": (
        "Melee Baseball Bat",
        "Melee Frying Pan",
        "Melee Inflatable Hammer",
        "Melee Sledge Hammer",
        "Melee Sword",
    ),
    "Mines": ("Mine Explosive", "Mine Shockwave", "Mine Stun"),
    "Upgrades": (
        "Upgrade Map Player Count",
        "Upgrade Player Energy",
        "Upgrade Player Extra Jump",
        "Upgrade Player Grab Range",
        "Upgrade Player Grab Strength",
        "Upgrade Player Health",
        "Upgrade Player Sprint Speed",
        "Upgrade Player Tumble Launch",
    ),
    "Other": (
        "Orb Zero Gravity",
        "Power Crystal",
        "Rubber Duck",
        "Extraction Tracker",
        "Valuable Tracker",
    ),
}

# Per-item field -> stat table keyed by "Item <name>"
ITEM_TABLES = {
    "count": "item",
    "purchased": "itemsPurchased",
    "purchased_total": "itemsPurchasedTotal",
    "upgrades": "itemsUpgradesPurchased",
}

BATTERY_TABLE = "itemStatBattery"


def _table(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    table = data.get(name)

    if not isinstance(table, dict):
        return {}

    return table


def group_items(save: Dict[str, Any]) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """ Group the item stat tables of a save by item category

    Every known item gets an entry, counters default to 0. Battery levels
    are stored per item instance, so every battery key starting with the
    item's name is collected.

    """

    data = save_data(save)
    tables = {field: _table(data, name) for field, name in ITEM_TABLES.items()}
    batteries = _table(data, BATTERY_TABLE)

    groups = {}

    for category, items in ITEM_CATEGORIES.items():
        groups[category] = {}

        for item_name in items:
            key = ITEM_PREFIX + item_name

            entry = {
                field: table.get(key, 0)
                for field, table in tables.items()
            }

            entry["stat_battery"] = {
                instance: level
                for instance, level in batteries.items()
                if instance.startswith(key)
            }

            groups[category][item_name] = entry

    return groups
