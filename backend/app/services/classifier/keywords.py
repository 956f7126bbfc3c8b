"""Keyword tables for the bathhouse classifier.

These lists are product data and get tuned often. Keep the classifier's
stage order untouched when editing them.
"""

# Unambiguous terms. A match short-circuits before any exclusion check.
HIGH_PRIORITY_INCLUDE = (
    "銭湯",
    "温泉",
    "サウナ",
    "スーパー銭湯",
    "健康ランド",
    "health land",
    "onsen",
    "sento",
    "sauna",
)

# Fitness chains, clinics, salons and unrelated venues that share the
# "spa" category with real bathhouses.
EXCLUDE = (
    "フィットネス",
    "fitness",
    "gym",
    "ジム",
    "エニタイム",
    "ライザップ",
    "ゴールドジム",
    "カーブス",
    "ヨガ",
    "マッサージ店",
    "エステ",
    "ネイル",
    "美容院",
    "美容室",
    "ヘアサロン",
    "病院",
    "クリニック",
    "整骨院",
    "接骨院",
    "学校",
    "図書館",
    "美術館",
    "博物館",
)

# Generic terms, only trusted once exclusions have been ruled out.
MEDIUM_PRIORITY_INCLUDE = (
    "湯",
    "風呂",
    "浴場",
    "bath",
    "入浴",
    "湯屋",
    "岩盤浴",
    "天然温泉",
    "露天風呂",
    "大浴場",
)

DISALLOWED_TYPES = ("gym", "fitness_center", "beauty_salon")

ALLOWED_TYPES = ("spa", "health", "sauna", "public_bath")
