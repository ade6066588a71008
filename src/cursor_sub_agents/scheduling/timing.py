"""Timing constants for both execution modes, in seconds."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class TimingProfile:
    # Sequential mode
    activation_delay: float = 0.2
    typing_settle: float = 0.5
    enter_delay: float = 1.0
    medium_text_threshold: int = 100
    long_text_threshold: int = 200
    short_text_wait: float = 1.0
    medium_text_wait: float = 2.0
    long_text_wait: float = 3.0
    goal_submission_wait: float = 3.0
    window_open_wait: float = 2.0
    focus_wait: float = 0.5
    task_list_delay_per_task: float = 1.0
    min_task_list_delay: float = 3.0
    between_agents: float = 3.0

    # Detached mode, offsets relative to an agent's start
    enter1_offset: float = 2.0
    enter2_offset: float = 4.0
    follow_up_start_offset: float = 6.0
    follow_up_interval: float = 4.0
    typing_time_per_char: float = 0.01
    min_typing_time: float = 0.5

    def settle_after_submit(self, text: str) -> float:
        """Wait after the first Enter; longer text needs longer to be processed."""

        length = len(text)
        if length > self.long_text_threshold:
            return self.long_text_wait
        if length > self.medium_text_threshold:
            return self.medium_text_wait
        return self.short_text_wait

    def task_list_delay(self, task_count: int) -> float:
        return max(self.min_task_list_delay, task_count * self.task_list_delay_per_task)

    def estimated_typing_time(self, text: str) -> float:
        return max(self.min_typing_time, len(text) * self.typing_time_per_char)

    def session_duration(self, follow_up_count: int) -> float:
        """Offset at which the next detached agent may start."""

        return self.follow_up_start_offset + follow_up_count * self.follow_up_interval


DEFAULT_TIMING = TimingProfile()


__all__ = ["DEFAULT_TIMING", "TimingProfile"]
