"""
Carrier identification rules.

Maps tracking-number shapes to the courier that issued them. Used to fill in
the company when a sheet has no company column.
"""

import re

# =============================================================================
# CARRIER PATTERNS (order matters - first match wins)
# =============================================================================
# Patterns are tested against the upper-cased, trimmed tracking number.
#
# Several carriers share the bare "7 + 12-16 digits" shape (中通, 圆通, 申通,
# 韵达) and "1 + 12-16 digits" (圆通, 韵达). JD/JT prefixes overlap between
# 邮政EMS and 京东. Such numbers always resolve to the earliest rule below.

CARRIER_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("中通", re.compile(r"^(ZTO|6)\d{10,15}$|^7\d{11,15}$")),
    ("圆通", re.compile(r"^(YT|D|1)\d{11,15}$|^7\d{11,15}$")),
    ("申通", re.compile(r"^(STO|268)\d{10,15}$|^7\d{11,15}$")),
    ("韵达", re.compile(r"^(YD|19|1)\d{11,15}$|^7\d{11,15}$")),
    ("顺丰", re.compile(r"^(SF)\d{10,15}$|^[89]\d{11,15}$")),
    ("德邦", re.compile(r"^(DP|3)\d{11,15}$")),
    ("邮政EMS", re.compile(r"^(E[A-Z])\d{9}[A-Z]{2}$|^(JD|JT)\d{11,15}$")),
    ("京东", re.compile(r"^(JD|VA|JT)\d{11,15}$")),
    ("天天", re.compile(r"^(TT|88)\d{11,15}$")),
    ("百世", re.compile(r"^(HT|A)\d{11,15}$")),
]
