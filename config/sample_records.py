"""
Built-in sample dataset.

Served when neither an uploaded workbook nor the record store has any data,
so the tracking views are never empty on a fresh install.
"""

SAMPLE_BATCH = "示例批次"
SAMPLE_KIND = "正常"
SAMPLE_STATUS = "待处理"

# (tracking number, column label, company)
# The last four are 邮政 numbers the carrier rules do not recognize.
SAMPLE_TRACKING_NUMBERS = [
    ("75761365043766", "中通", "中通"),
    ("75761370314853", "中通", "中通"),
    ("75761778084401", "中通", "中通"),
    ("75701252115546", "中通", "中通"),
    ("77632957076153", "申通", "申通"),
    ("77716951501759", "申通", "申通"),
    ("77718014846666", "申通", "申通"),
    ("77637759935866", "申通", "申通"),
    ("YT894185215852", "圆通", "圆通"),
    ("YT893990509270", "圆通", "圆通"),
    ("YT893963976843", "圆通", "圆通"),
    ("YT894201069876", "圆通", "圆通"),
    ("46334069260168", "韵达", "韵达"),
    ("31866359263298", "韵达", "韵达"),
    ("46287276652932", "韵达", "韵达"),
    ("31843064579230", "韵达", "韵达"),
    ("98574940403", "邮政", ""),
    ("98560526232", "邮政", ""),
    ("98536949291", "邮政", ""),
    ("97296408178", "邮政", ""),
]

# Sample rows are laid out four per row, like a carrier-per-column sheet
SAMPLE_COLUMNS_PER_ROW = 4
