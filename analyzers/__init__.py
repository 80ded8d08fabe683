"""analyzers package - Estimators and tests applied to one dataset."""

from analyzers.t_test import OneSampleTTest
from analyzers.anova import OneWayANOVA, WelchANOVA

__all__ = ['OneSampleTTest', 'OneWayANOVA', 'WelchANOVA']
