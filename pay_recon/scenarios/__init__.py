"""Simulation scenarios for exercising reconciliation under load."""

from pay_recon.scenarios.callback_storm import CallbackStormScenario, ScenarioReport

__all__ = ["CallbackStormScenario", "ScenarioReport"]
