"""Team-name normalization and Kalshi ticker abbreviations."""

import re

# Kalshi ticker codes for teams whose code is not simply the first three
# letters of the normalized name. Keys are normalized (see TeamNormalizer).
TEAM_ABBR: dict[str, str] = {
    # International cricket
    "south africa": "SA",
    "new zealand": "Z",
    "west indies": "WIN",
    "sri lanka": "SL",
    # NFL
    "green bay packers": "GB",
    "jacksonville jaguars": "JAX",
    "kansas city chiefs": "KC",
    "las vegas raiders": "LV",
    "los angeles chargers": "LAC",
    "los angeles rams": "LAR",
    "new england patriots": "NE",
    "new orleans saints": "NO",
    "new york giants": "NYG",
    "new york jets": "NYJ",
    "san francisco 49ers": "SF",
    "tampa bay buccaneers": "TB",
    # NBA
    "brooklyn nets": "BKN",
    "new york knicks": "NYK",
    "golden state warriors": "GS",
    "los angeles lakers": "LAL",
    "los angeles clippers": "LAC",
    "phoenix suns": "PHX",
    "oklahoma city thunder": "OKC",
    "san antonio spurs": "SAS",
    "new orleans pelicans": "NO",
    # NHL
    "los angeles kings": "LA",
    "new jersey devils": "NJ",
    "new york islanders": "NYI",
    "new york rangers": "NYR",
    "san jose sharks": "SJ",
    "tampa bay lightning": "TB",
    "vegas golden knights": "VGK",
    "columbus blue jackets": "CBJ",
    "washington capitals": "WSH",
    "winnipeg jets": "WPG",
    "nashville predators": "NSH",
    "calgary flames": "CGY",
    "montreal canadiens": "MTL",
    # MLB
    "chicago cubs": "CHC",
    "chicago white sox": "CWS",
    "new york yankees": "NYY",
    "new york mets": "NYM",
    "los angeles dodgers": "LAD",
    "los angeles angels": "LAA",
    "san diego padres": "SD",
    "san francisco giants": "SF",
    "tampa bay rays": "TB",
    "kansas city royals": "KC",
    "washington nationals": "WSH",
    "arizona diamondbacks": "AZ",
    # NCAAF
    "texas tech red raiders": "TTU",
    "texas tech": "TTU",
    "western michigan broncos": "WMU",
    "western michigan": "WMU",
    "miami oh redhawks": "MOH",
    "miami redhawks": "MOH",
    "miami oh": "MOH",
    "ohio state buckeyes": "OSU",
    "ohio state": "OSU",
    "virginia cavaliers": "UVA",
    "virginia": "UVA",
    "georgia bulldogs": "UGA",
    "georgia": "UGA",
    "michigan wolverines": "MICH",
    "michigan": "MICH",
    "washington huskies": "WASH",
    "washington": "WASH",
    "florida state seminoles": "FSU",
    "florida state": "FSU",
    "clemson tigers": "CLEM",
    "clemson": "CLEM",
    "notre dame fighting irish": "ND",
    "notre dame": "ND",
    "penn state nittany lions": "PSU",
    "penn state": "PSU",
    "tennessee volunteers": "TENN",
    "tennessee": "TENN",
    "ole miss rebels": "MISS",
    "ole miss": "MISS",
    "missouri tigers": "MIZZ",
    "missouri": "MIZZ",
    "kentucky wildcats": "UK",
    "kentucky": "UK",
    "florida gators": "FLA",
    "florida": "FLA",
    "texas a and m aggies": "TAMU",
    "texas a and m": "TAMU",
    "colorado buffaloes": "COLO",
    "colorado": "COLO",
    "utah utes": "UTAH",
    "utah": "UTAH",
    "arizona wildcats": "ARIZ",
    "arizona": "ARIZ",
    "arizona state sun devils": "ASU",
    "arizona state": "ASU",
    "north carolina tar heels": "UNC",
    "north carolina": "UNC",
    "nc state wolfpack": "NCST",
    "nc state": "NCST",
    "iowa hawkeyes": "IOWA",
    "iowa": "IOWA",
    "wisconsin badgers": "WISC",
    "wisconsin": "WISC",
    "north dakota state bison": "NDSU",
    "north dakota state": "NDSU",
    "illinois state redbirds": "ILST",
    "illinois state": "ILST",
    "navy midshipmen": "NAVY",
    "navy": "NAVY",
    "army black knights": "ARMY",
    "army": "ARMY",
    # NCAAB
    "kansas jayhawks": "KU",
    "kansas": "KU",
    "uconn huskies": "UCONN",
    "uconn": "UCONN",
    "creighton bluejays": "CREI",
    "creighton": "CREI",
    "marquette golden eagles": "MARQ",
    "marquette": "MARQ",
}


class TeamNormalizer:
    """Normalizes team names so casing and punctuation never affect a match."""

    def __init__(self, abbreviations: dict[str, str] | None = None) -> None:
        table = TEAM_ABBR if abbreviations is None else abbreviations
        # Keys are re-normalized so callers may pass display names
        self.abbreviations = {self.normalize(k): v.upper() for k, v in table.items()}

    @staticmethod
    def normalize(name: str) -> str:
        """
        Case-fold, drop punctuation and collapse whitespace.

        Args:
            name: Raw team name, e.g. "L.A. Clippers" or "Texas A&M".

        Returns:
            The normalized name, e.g. "la clippers" or "texas a and m".
        """
        normalized = name.casefold().strip()
        normalized = normalized.replace("&", " and ")
        normalized = re.sub(r"[.'’]", "", normalized)  # L.A. -> la, O'Brien -> obrien
        normalized = re.sub(r"[^\w\s]", " ", normalized)
        normalized = re.sub(r"\s+", " ", normalized)
        return normalized.strip()

    def abbreviation(self, team: str) -> str:
        """Kalshi ticker code for a team.

        Falls back to the first three letters of the normalized name.
        """
        normalized = self.normalize(team)
        if normalized in self.abbreviations:
            return self.abbreviations[normalized]
        compact = normalized.replace(" ", "")
        return compact[:3].upper()
