import logging
import httpx

from dataclasses import dataclass, field
from typing import Optional
from xml.etree import ElementTree


from es3.errors import SteamProfileError


logger = logging.getLogger(__name__)


STEAM_PROFILE_URL = "https://steamcommunity.com/profiles/{steam_id}/?xml=1"


@dataclass
class InGameInfo:
    game_name: str = ""
    game_link: str = ""
    game_icon: str = ""
    game_logo: str = ""
    game_logo_small: str = ""


@dataclass
class SteamProfile:
    steam_id64: str = ""
    steam_id: str = ""
    online_state: str = ""
    state_message: str = ""
    avatar_icon: str = ""
    avatar_medium: str = ""
    avatar_full: str = ""
    real_name: str = ""
    summary: str = ""
    in_game_info: InGameInfo = field(default_factory=InGameInfo)
    custom_url: str = ""
    member_since: str = ""
    location: str = ""


def _text(element: Optional[ElementTree.Element], tag: str) -> str:
    if element is None:
        return ""

    child = element.find(tag)

    if child is None or child.text is None:
        return ""

    return child.text.strip()


def parse_steam_profile(body: bytes) -> SteamProfile:
    """ Parse the XML document served by a community profile page

    Missing elements are left empty. Steam answers unknown IDs with a
    <response> document instead of a <profile>, which is rejected here.

    """

    try:
        root = ElementTree.fromstring(body)
    except ElementTree.ParseError as e:
        raise SteamProfileError(f"failed to parse XML response: {e}") from e

    if root.tag != "profile":
        raise SteamProfileError(
            "failed to parse XML response: "
            f"expected <profile>, got <{root.tag}>"
        )

    game = root.find("inGameInfo")

    return SteamProfile(
        steam_id64=_text(root, "steamID64"),
        steam_id=_text(root, "steamID"),
        online_state=_text(root, "onlineState"),
        state_message=_text(root, "stateMessage"),
        avatar_icon=_text(root, "avatarIcon"),
        avatar_medium=_text(root, "avatarMedium"),
        avatar_full=_text(root, "avatarFull"),
        real_name=_text(root, "realname"),
        summary=_text(root, "summary"),
        in_game_info=InGameInfo(
            game_name=_text(game, "gameName"),
            game_link=_text(game, "gameLink"),
            game_icon=_text(game, "gameIcon"),
            game_logo=_text(game, "gameLogo"),
            game_logo_small=_text(game, "gameLogoSmall"),
        ),
        custom_url=_text(root, "customURL"),
        member_since=_text(root, "memberSince"),
        location=_text(root, "location"),
    )


def fetch_steam_profile(
    steam_id: str,
    client: Optional[httpx.Client] = None,
) -> SteamProfile:
    url = STEAM_PROFILE_URL.format(steam_id=steam_id)
    logger.debug("fetching %s", url)

    try:
        if client is None:
            response = httpx.get(url, follow_redirects=True)
        else:
            response = client.get(url, follow_redirects=True)

        response.raise_for_status()
    except httpx.HTTPError as e:
        raise SteamProfileError(f"failed to fetch Steam profile: {e}") from e

    profile = parse_steam_profile(response.content)

    if not profile.steam_id64:
        raise SteamProfileError(f"no player found with Steam ID: {steam_id}")

    return profile
