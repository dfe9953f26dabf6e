from .notifier import WebhookNotifier, format_findings_comment
from .synthesizer import ReportSynthesizer, determine_verdict, assess_risk
