from __future__ import annotations
from typing import Optional

# Language codes accepted by the DeepL API
LANG_LABELS = {
    "AR": "Arabic", "BG": "Bulgarian", "CS": "Czech", "DA": "Danish",
    "DE": "German", "EL": "Greek", "EN": "English", "EN-GB": "English (British)",
    "EN-US": "English (American)", "ES": "Spanish", "ET": "Estonian",
    "FI": "Finnish", "FR": "French", "HU": "Hungarian", "ID": "Indonesian",
    "IT": "Italian", "JA": "Japanese", "KO": "Korean", "LT": "Lithuanian",
    "LV": "Latvian", "NB": "Norwegian (Bokmal)", "NL": "Dutch", "PL": "Polish",
    "PT": "Portuguese", "PT-BR": "Portuguese (Brazil)", "PT-PT": "Portuguese (Portugal)",
    "RO": "Romanian", "RU": "Russian", "SK": "Slovak", "SL": "Slovenian",
    "SV": "Swedish", "TR": "Turkish", "UK": "Ukrainian", "ZH": "Chinese",
}

def parse_lang(code: str) -> str:
    """
    Normalize `fr`, `pt_br`, `pt-BR`, `EN-US` ... to the DeepL form (`FR`, `PT-BR`).
    Raises ValueError for codes DeepL does not know.
    """
    norm = (code or "").strip().replace("_", "-").upper()
    if norm not in LANG_LABELS:
        raise ValueError(f"unsupported language '{code}'")
    return norm

def try_parse_lang(code: str) -> Optional[str]:
    try:
        return parse_lang(code)
    except ValueError:
        return None

def file_suffix(lang: str) -> str:
    # EN-US -> en_us, as used in app_en_us.arb
    return lang.lower().replace("-", "_")

def arb_locale(lang: str) -> str:
    # value written to @@locale: fr, pt_BR, en_US
    base, _, region = lang.partition("-")
    return f"{base.lower()}_{region.upper()}" if region else base.lower()

def source_code(lang: str) -> str:
    # DeepL only accepts the base language as source_lang
    return lang.split("-", 1)[0]

def label(lang: str) -> str:
    return LANG_LABELS.get(lang, lang)
