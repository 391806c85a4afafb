"""
Internationalization (i18n) module for CLI output.

Provides translations for all user-facing CLI messages in German (de) and
English (en).
"""

from typing import Optional


# Supported languages
SUPPORTED_LANGUAGES = frozenset({"de", "en"})
DEFAULT_LANGUAGE = "de"


# Structure: {message_key: {language_code: translated_message}}
TRANSLATIONS: dict[str, dict[str, str]] = {
    # Renewal status values
    "status.unknown": {
        "de": "Unbekannt",
        "en": "Unknown",
    },
    "status.active": {
        "de": "Aktiv",
        "en": "Active",
    },
    "status.failed": {
        "de": "Fehlgeschlagen",
        "en": "Failed",
    },
    "status.error": {
        "de": "Fehler",
        "en": "Error",
    },

    # CLI messages
    "cli.check_started": {
        "de": "Starte Erneuerungsprüfung...",
        "en": "Starting renewal check...",
    },
    "cli.check_skipped": {
        "de": "Prüfung übersprungen: {reason}",
        "en": "Check skipped: {reason}",
    },
    "cli.check_summary": {
        "de": "Geprüft: {checked}, berechtigt: {eligible}, erneuert: {renewed}, fehlgeschlagen: {failed}, übersprungen: {skipped}, Prüffehler: {check_errors}",
        "en": "Checked: {checked}, eligible: {eligible}, renewed: {renewed}, failed: {failed}, skipped: {skipped}, check errors: {check_errors}",
    },
    "cli.renewing_domain": {
        "de": "Erneuere Zertifikat für {domain}...",
        "en": "Renewing certificate for {domain}...",
    },
    "cli.installing_domain": {
        "de": "Installiere Zertifikat für {domain} ({method})...",
        "en": "Installing certificate for {domain} ({method})...",
    },
    "cli.success": {
        "de": "Erfolgreich: {message}",
        "en": "Success: {message}",
    },
    "cli.failure": {
        "de": "Fehlgeschlagen: {error}",
        "en": "Failed: {error}",
    },
    "cli.domain_enabled": {
        "de": "Automatische Erneuerung für {domain} aktiviert",
        "en": "Automatic renewal enabled for {domain}",
    },
    "cli.domain_disabled": {
        "de": "Automatische Erneuerung für {domain} deaktiviert",
        "en": "Automatic renewal disabled for {domain}",
    },
    "cli.settings_saved": {
        "de": "Einstellungen gespeichert",
        "en": "Settings saved",
    },
    "cli.scheduler_started": {
        "de": "Scheduler läuft ({frequency}). Beenden mit Strg+C.",
        "en": "Scheduler running ({frequency}). Stop with Ctrl+C.",
    },
    "cli.scheduler_disabled": {
        "de": "Automatische Erneuerung ist global deaktiviert",
        "en": "Automatic renewal is globally disabled",
    },
    "cli.no_activity": {
        "de": "Keine Aktivitäten vorhanden",
        "en": "No activity recorded",
    },
    "cli.no_domains": {
        "de": "Keine Domains konfiguriert",
        "en": "No domains configured",
    },
    "cli.invalid_input": {
        "de": "Ungültige Eingabe: {error}",
        "en": "Invalid input: {error}",
    },
    "cli.config_load_failed": {
        "de": "Konfiguration konnte nicht aus {path} geladen werden",
        "en": "Could not load config from {path}",
    },

    # Status table
    "report.header": {
        "de": "Status der automatischen Erneuerung",
        "en": "Auto-renewal status",
    },
    "report.global_enabled": {
        "de": "Global aktiviert",
        "en": "Globally enabled",
    },
    "report.window": {
        "de": "Erneuerungsfenster: {days} Tage",
        "en": "Renewal window: {days} days",
    },
    "report.frequency": {
        "de": "Prüfintervall: {frequency}",
        "en": "Check frequency: {frequency}",
    },
    "report.no_certificate": {
        "de": "kein Zertifikat",
        "en": "no certificate",
    },
    "report.days_left": {
        "de": "{days} Tage verbleibend",
        "en": "{days} days left",
    },
    "report.renewal_needed": {
        "de": "Erneuerung fällig",
        "en": "renewal due",
    },
    "report.in_progress": {
        "de": "in Bearbeitung",
        "en": "in progress",
    },

    # Simulation mode
    "simulation.enabled": {
        "de": "Simulationsmodus aktiv - es werden keine Zertifikate verändert",
        "en": "Simulation mode enabled - no certificates will be changed",
    },

    # Self-test
    "selftest.header": {
        "de": "Selbsttest",
        "en": "Self-test",
    },
    "selftest.config_validation": {
        "de": "Konfigurationsprüfung:",
        "en": "Configuration validation:",
    },
    "selftest.config_valid": {
        "de": "Konfiguration ist gültig",
        "en": "Configuration is valid",
    },
    "selftest.config_invalid": {
        "de": "Konfiguration ist ungültig",
        "en": "Configuration is invalid",
    },
    "selftest.warnings": {
        "de": "Warnungen:",
        "en": "Warnings:",
    },
    "selftest.checks": {
        "de": "Systemprüfungen:",
        "en": "System checks:",
    },
    "selftest.success": {
        "de": "Selbsttest erfolgreich",
        "en": "Self-test passed",
    },
    "selftest.failed": {
        "de": "Selbsttest fehlgeschlagen",
        "en": "Self-test failed",
    },
    "selftest.duration": {
        "de": "Dauer",
        "en": "Duration",
    },
}


def get_message(
    key: str,
    language: Optional[str] = None,
    **kwargs,
) -> str:
    """
    Get a translated message by key.

    Args:
        key: The message key (e.g., 'cli.check_started')
        language: Language code ('de' or 'en'). Defaults to DEFAULT_LANGUAGE.
        **kwargs: Format arguments for the message template

    Returns:
        The translated and formatted message string.
        If the key is not found, returns the key itself.
        If the language is not found, falls back to DEFAULT_LANGUAGE.

    Examples:
        >>> get_message('status.active', 'en')
        'Active'
        >>> get_message('cli.check_skipped', 'en', reason='locked')
        'Check skipped: locked'
    """
    if language is None or language not in SUPPORTED_LANGUAGES:
        language = DEFAULT_LANGUAGE

    translations = TRANSLATIONS.get(key)
    if translations is None:
        return key

    message = translations.get(language)
    if message is None:
        message = translations.get(DEFAULT_LANGUAGE)
    if message is None:
        return key

    if kwargs:
        try:
            message = message.format(**kwargs)
        except KeyError:
            # Missing argument: keep the template
            pass

    return message


def get_missing_translations(language: str) -> set[str]:
    """Message keys without a translation for ``language``."""
    return {
        key for key, translations in TRANSLATIONS.items() if language not in translations
    }


def validate_translations() -> dict[str, set[str]]:
    """
    Validate that all languages have all translations.

    Returns:
        Dictionary mapping language codes to sets of missing message keys.
    """
    return {language: get_missing_translations(language) for language in SUPPORTED_LANGUAGES}
