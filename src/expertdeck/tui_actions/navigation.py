"""
Navigation action methods for the tower.

Handles moving the focus between experts.
"""


class NavigationActionsMixin:
    """Mixin providing navigation actions for TowerApp."""

    def action_focus_next_expert(self) -> None:
        count = self.tower.config.num_experts
        if not count:
            return
        self.focused_expert = (self.focused_expert + 1) % count
        self._render_views()
        self._update_preview()

    def action_focus_previous_expert(self) -> None:
        count = self.tower.config.num_experts
        if not count:
            return
        self.focused_expert = (self.focused_expert - 1) % count
        self._render_views()
        self._update_preview()

    def action_focus_expert(self, expert_id: int) -> None:
        """Jump straight to an expert (number keys)."""
        if self.tower.config.get_expert(expert_id) is None:
            return
        self.focused_expert = expert_id
        self._render_views()
        self._update_preview()
