"""Alert system module."""
from alerts.engine import AlertEngine
from alerts.rules_manager import RulesManager, build_rule
from alerts.compiler import RuleCompiler
from alerts.channels import InAppChannel, EmailChannel, SMSChannel
from alerts.sinks import ConsoleSink, FileSink, NullSink
