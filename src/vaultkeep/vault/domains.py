# Vault Module - Global Equivalent Domains
#
# Static groups of hosts that share one login (autofill treats them as the
# same site). Type numbers are the client's well-known group ids; accounts
# opt out per type via excludedGlobalEquivalentDomains.

from typing import Any, Dict, List, Sequence

GLOBAL_EQUIVALENT_DOMAINS: List[Dict[str, Any]] = [
    {"type": 0, "domains": ["youtube.com", "google.com", "gmail.com"]},
    {"type": 1, "domains": ["apple.com", "icloud.com"]},
    {"type": 2, "domains": ["ameritrade.com", "tdameritrade.com"]},
    {"type": 3, "domains": ["bankofamerica.com", "bofa.com", "mbna.com", "usecfo.com"]},
    {"type": 4, "domains": ["sprint.com", "sprintpcs.com", "nextel.com"]},
    {"type": 10, "domains": ["microsoft.com", "msn.com", "live.com", "office.com", "outlook.com", "xbox.com", "skype.com", "bing.com"]},
    {"type": 11, "domains": ["united.com", "ua2go.com"]},
    {"type": 12, "domains": ["yahoo.com", "flickr.com"]},
    {"type": 14, "domains": ["paypal.com", "paypal-search.com"]},
    {"type": 18, "domains": ["amazon.com", "amazon.co.uk", "amazon.ca", "amazon.de", "amazon.fr", "amazon.es", "amazon.it", "amazon.co.jp", "amazon.com.au", "amazon.in"]},
    {"type": 21, "domains": ["verizon.com", "verizonwireless.com", "vzw.com"]},
    {"type": 26, "domains": ["steampowered.com", "steamcommunity.com", "steamgames.com"]},
    {"type": 30, "domains": ["oracle.com", "java.com", "mysql.com"]},
    {"type": 36, "domains": ["comcast.net", "comcast.com", "xfinity.com"]},
    {"type": 39, "domains": ["dropbox.com", "getdropbox.com"]},
    {"type": 42, "domains": ["playstation.com", "sonyentertainmentnetwork.com"]},
    {"type": 51, "domains": ["facebook.com", "messenger.com"]},
    {"type": 54, "domains": ["disney.com", "disneyplus.com", "go.com", "espn.com"]},
    {"type": 64, "domains": ["ebay.com", "ebay.co.uk", "ebay.ca", "ebay.de", "ebay.fr", "ebay.com.au"]},
    {"type": 74, "domains": ["airbnb.com", "airbnb.co.uk", "airbnb.ca", "airbnb.de", "airbnb.fr"]},
    {"type": 76, "domains": ["stackexchange.com", "stackoverflow.com", "superuser.com", "serverfault.com", "askubuntu.com"]},
]


def global_domains_view(excluded: Sequence[int]) -> List[Dict[str, Any]]:
    """Every global group, flagged with whether the account excluded it."""
    excluded_types = set(excluded or [])
    return [
        {
            "type": group["type"],
            "domains": list(group["domains"]),
            "excluded": group["type"] in excluded_types,
        }
        for group in GLOBAL_EQUIVALENT_DOMAINS
    ]
