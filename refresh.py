from enum import Enum

from pacing import Pacer
from surface import TargetSurface, probe

POLL_INTERVAL_MS = 300


class RefreshState(Enum):
    POLLING = "polling"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


class RefreshSynchronizer:
    """Waits for the "report is outdated" snackbar and asks the tester to recompute.

    A timeout is not an error: the report on screen may already be current.
    """

    def __init__(self, surface: TargetSurface, pacer: Pacer):
        self.surface = surface
        self.pacer = pacer
        self.state = RefreshState.POLLING

    def wait_for_refresh(self, appear_timeout_ms: float, post_action_wait_ms: float) -> bool:
        self.state = RefreshState.POLLING
        start = self.pacer.now_ms()
        while self.pacer.now_ms() - start < appear_timeout_ms:
            if probe("outdated report check", self.surface.outdated_report_visible, default=False):
                if probe("update report", self.surface.confirm_report_update, default=False):
                    self.state = RefreshState.CONFIRMED
                    print("  • Report update requested; waiting for recompute")
                    self.pacer.sleep(post_action_wait_ms, "report recompute")
                    return True
            self.pacer.sleep(POLL_INTERVAL_MS, "refresh poll")
        self.state = RefreshState.TIMED_OUT
        return False
