"""Built-in rule sets, profiles and the app-category mapping table."""

from blockwarden.models import BlockingCategory, BlockingProfile, BlockingRule, RuleKind

DEFAULT_LIST_NAME = "Focus Mode Default"
DEFAULT_LIST_DESCRIPTION = "Default block list for Focus Mode sessions"

# Rules applied alongside whichever profile is active
DEFAULT_RULE_SPECS: list[tuple[str, str, BlockingCategory]] = [
    ("Facebook", "facebook.com", BlockingCategory.SOCIAL_MEDIA),
    ("Instagram", "instagram.com", BlockingCategory.SOCIAL_MEDIA),
    ("Twitter", "twitter.com", BlockingCategory.SOCIAL_MEDIA),
    ("YouTube", "youtube.com", BlockingCategory.ENTERTAINMENT),
    ("Netflix", "netflix.com", BlockingCategory.ENTERTAINMENT),
    ("CNN", "cnn.com", BlockingCategory.NEWS),
    ("BBC", "bbc.com", BlockingCategory.NEWS),
]

# Seed content of the "Focus Mode Default" list
STARTER_RULE_SPECS: list[tuple[str, str, BlockingCategory]] = [
    ("Facebook", "facebook.com", BlockingCategory.SOCIAL_MEDIA),
    ("Instagram", "instagram.com", BlockingCategory.SOCIAL_MEDIA),
    ("Twitter/X", "twitter.com", BlockingCategory.SOCIAL_MEDIA),
    ("TikTok", "tiktok.com", BlockingCategory.SOCIAL_MEDIA),
    ("YouTube", "youtube.com", BlockingCategory.ENTERTAINMENT),
]

DEFAULT_PROFILE_SPECS: list[tuple[str, str]] = [
    ("Work Mode", "Block distracting sites and apps during work hours"),
    ("Study Mode", "Block entertainment and social media for focused study"),
    ("Digital Wellbeing", "Limit screen time and promote healthy digital habits"),
]

# App-category identifiers (system id, catalog name or item identifier,
# lowercased) that map to something more specific than Custom.
APP_CATEGORY_MAPPING: dict[str, BlockingCategory] = {
    "social": BlockingCategory.SOCIAL_MEDIA,
    "social_media": BlockingCategory.SOCIAL_MEDIA,
    "social networking": BlockingCategory.SOCIAL_MEDIA,
    "socialnetworking": BlockingCategory.SOCIAL_MEDIA,
    "entertainment": BlockingCategory.ENTERTAINMENT,
    "games": BlockingCategory.ENTERTAINMENT,
    "gaming": BlockingCategory.ENTERTAINMENT,
    "video": BlockingCategory.ENTERTAINMENT,
    "news": BlockingCategory.NEWS,
    "shopping": BlockingCategory.SHOPPING,
    "shopping & food": BlockingCategory.SHOPPING,
    "productivity": BlockingCategory.PRODUCTIVITY,
    "productivity & finance": BlockingCategory.PRODUCTIVITY,
}


def _domain_rules(specs: list[tuple[str, str, BlockingCategory]]) -> list[BlockingRule]:
    return [
        BlockingRule(name=name, kind=RuleKind.DOMAIN, pattern=pattern, category=category)
        for name, pattern, category in specs
    ]


def default_rules() -> list[BlockingRule]:
    return _domain_rules(DEFAULT_RULE_SPECS)


def starter_rules() -> list[BlockingRule]:
    return _domain_rules(STARTER_RULE_SPECS)


def default_profiles() -> list[BlockingProfile]:
    return [
        BlockingProfile(name=name, description=description)
        for name, description in DEFAULT_PROFILE_SPECS
    ]
