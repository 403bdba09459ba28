"""
Completion e-mail for CSV import runs.

The body is rendered from ``importer/csv_import_result.html`` and delivered
over SMTP using the ``MAIL_*`` settings from ``config.monitoring``.
"""

from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Iterable, Sequence

from flask import current_app, render_template

from docimport.models.importer.schema import ImportLogStatus, ImportRun

from .pipeline.import_log import ImportLogEntry, ImportResult

TEMPLATE_NAME = "importer/csv_import_result.html"


def resolve_recipients(notify_email: str | None, mail_to: Iterable[str]) -> list[str]:
    recipients: list[str] = []
    for address in (notify_email, *mail_to):
        if address and address not in recipients:
            recipients.append(address)
    return recipients


def render_import_result(run: ImportRun, result: ImportResult, entries: Sequence[ImportLogEntry]) -> str:
    reported = [entry for entry in entries if entry.status in (ImportLogStatus.SKIPPED, ImportLogStatus.ERROR)]
    return render_template(
        TEMPLATE_NAME,
        import_result=result,
        import_logs=reported,
        csv_filename=run.source_filename,
        start_date=run.started_at,
        username=run.username,
        parent_path=run.parent_path,
        title=run.title,
    )


def send_import_result_email(
    run: ImportRun,
    result: ImportResult,
    entries: Sequence[ImportLogEntry],
    *,
    mail_to: Iterable[str] = (),
) -> bool:
    """
    Send the run summary; returns False when there is nobody to notify.

    SMTP failures are logged and re-raised to the caller.
    """

    config = current_app.config
    recipients = resolve_recipients(run.notify_email, mail_to)
    if not recipients:
        current_app.logger.info(
            "No e-mail recipient for import run; skipping notification",
            extra={"importer_import_key": run.import_key},
        )
        return False
    if not config.get("MAIL_SERVER"):
        current_app.logger.warning(
            "MAIL_SERVER is not configured; cannot send import result e-mail",
            extra={"importer_import_key": run.import_key},
        )
        return False

    message = MIMEMultipart("alternative")
    message["Subject"] = f"[{config.get('APP_NAME', 'docimport')}] {run.title} finished"
    message["From"] = config.get("MAIL_FROM")
    message["To"] = ", ".join(recipients)
    message.attach(MIMEText(render_import_result(run, result, entries), "html", "utf-8"))

    try:
        with smtplib.SMTP(config["MAIL_SERVER"], config.get("MAIL_PORT", 587)) as server:
            if config.get("MAIL_USE_TLS", True):
                server.starttls()
            if config.get("MAIL_USERNAME") and config.get("MAIL_PASSWORD"):
                server.login(config["MAIL_USERNAME"], config["MAIL_PASSWORD"])
            server.sendmail(config.get("MAIL_FROM"), recipients, message.as_string())
    except (smtplib.SMTPException, OSError) as exc:
        current_app.logger.error(
            "Failed to send import result e-mail: %s",
            exc,
            extra={"importer_import_key": run.import_key, "importer_recipients": recipients},
        )
        raise

    current_app.logger.info(
        "Import result e-mail sent",
        extra={"importer_import_key": run.import_key, "importer_recipients": recipients},
    )
    return True
