"""Built-in e-mail templates and business constants.

Built-in templates use ``{{key}}`` placeholders; tenant templates stored in
``email_templates`` use ``{key}``.
"""

EMAIL_TEMPLATES = [
    {
        "id": "project-introduction",
        "name": "案件紹介",
        "subject": "【案件紹介】{{project_title}}",
        "body": (
            "{{sender}} 様\n\n"
            "お世話になっております。{{companyContact}}でございます。\n\n"
            "以下の案件についてご紹介いたします。\n\n"
            "■案件名: {{project_title}}\n"
            "■概要: {{project_description}}\n"
            "■必要スキル: {{project_skills}}\n"
            "■勤務地: {{project_location}}\n"
            "■単価: {{project_budget}}\n"
            "■期間: {{project_duration}}\n"
            "■開始時期: {{project_start_date}}\n"
            "■日本語レベル: {{project_japanese_level}}\n\n"
            "ご検討のほどよろしくお願いいたします。"
        ),
    },
    {
        "id": "engineer-introduction",
        "name": "技術者紹介",
        "subject": "【技術者紹介】{{engineer_name}}（{{engineer_skills}}）",
        "body": (
            "{{sender}} 様\n\n"
            "お世話になっております。{{companyContact}}でございます。\n\n"
            "{{project_title}}について、以下の技術者をご紹介いたします。\n\n"
            "■氏名: {{engineer_name}}\n"
            "■スキル: {{engineer_skills}}\n"
            "■経験年数: {{engineer_experience}}\n"
            "■日本語レベル: {{engineer_japanese_level}}\n"
            "■最寄り駅: {{engineer_nearest_station}}\n"
            "■稼働可能日: {{engineer_availability}}\n"
            "■資格: {{engineer_certifications}}\n\n"
            "{{engineer_self_promotion}}\n\n"
            "ご検討のほどよろしくお願いいたします。"
        ),
    },
    {
        "id": "follow-up",
        "name": "フォローアップ",
        "subject": "【ご確認】{{title}}のご状況について",
        "body": (
            "{{sender}} 様\n\n"
            "先日ご紹介いたしました{{engineerName}}（{{engineerSkills}}）について、"
            "ご状況はいかがでしょうか。\n\n"
            "引き続きよろしくお願いいたします。"
        ),
    },
]

NO_TEMPLATE = "no-template"

ENGINEER_STATUSES = ["提案中", "事前面談", "面談", "結果待ち", "契約中", "営業終了", "アーカイブ"]
DEFAULT_ENGINEER_STATUS = "提案中"

# Store-level company type → stored value
COMPANY_TYPE_MAPPING = {
    "own": "自社",
    "other": "他社",
}

SAVED_MATCH_STATUS = "保存済み"

MULTI_ENGINEER_CATEGORY = "multi_engineer_introduction"

SKILL_CATEGORY_KEYWORDS = [
    ("Java", ("java", "spring")),
    ("Python", ("python", "django")),
    ("JavaScript", ("javascript", "react", "vue", "node")),
    ("PHP", ("php", "laravel")),
    ("Ruby", ("ruby", "rails")),
    ("C#", ("c#", ".net")),
    ("Go", ("go", "golang")),
    ("iOS", ("swift", "ios")),
    ("Android", ("kotlin", "android")),
    ("インフラ", ("aws", "azure", "docker")),
]
