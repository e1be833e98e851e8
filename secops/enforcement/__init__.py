from secops.enforcement.base import EnforcementBackend
from secops.enforcement.fail2ban import Fail2banBackend
from secops.enforcement.iptables import IptablesBackend

__all__ = ["EnforcementBackend", "Fail2banBackend", "IptablesBackend"]
