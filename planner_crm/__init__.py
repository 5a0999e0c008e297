"""Planner CRM - opportunity pipeline stage-transition engine."""
