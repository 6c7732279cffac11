"""Tests for DepReference."""

import logging

from cubx_resolver.models import DepReference, is_artifact_identity


class TestDepReference:
    """Tests for the DepReference model."""

    def test_get_id(self):
        assert DepReference('package1@1.0.0', 'util1').get_id() == 'package1@1.0.0/util1'
        assert DepReference('package1@1.0.0', 'util1').get_artifact_id() == 'util1'

    def test_root_referrer(self):
        assert DepReference('package1@1.0.0', 'util1').referrer == ['root']

    def test_identity_referrer_is_wrapped(self):
        referrer = {'webpackageId': 'package2@1.0.0', 'artifactId': 'util2'}
        assert DepReference('package1@1.0.0', 'util1', referrer=referrer).referrer == [referrer]

    def test_referrer_list_is_copied(self):
        referrer = ['root']
        dep_reference = DepReference('package1@1.0.0', 'util1', referrer=referrer)
        dep_reference.referrer.append('other')
        assert referrer == ['root']

    def test_invalid_referrer_falls_back_to_root(self, caplog):
        with caplog.at_level(logging.WARNING):
            dep_reference = DepReference('package1@1.0.0', 'util1', referrer=42)
        assert dep_reference.referrer == ['root']
        assert 'unexpected type' in caplog.text

    def test_equals(self):
        a = DepReference('package1@1.0.0', 'util1', referrer=['root'])
        b = DepReference('package1@1.0.0', 'util1', referrer={'webpackageId': 'x', 'artifactId': 'y'})
        assert a.equals(b)
        assert a == b
        assert hash(a) == hash(b)
        assert a != DepReference('package1@1.0.0', 'util2')
        assert a != 'package1@1.0.0/util1'

    def test_equals_compares_concatenation(self):
        assert DepReference('ab', 'c').equals(DepReference('a', 'bc'))

    def test_defaults_are_not_shared(self):
        a = DepReference('package1@1.0.0', 'util1')
        b = DepReference('package2@1.0.0', 'util2')
        a.resources.append('a.js')
        a.dependency_excludes.append({'webpackageId': 'x', 'artifactId': 'y'})
        assert b.resources == []
        assert b.dependency_excludes == []

    def test_str(self):
        assert str(DepReference('package1@1.0.0', 'util1')) == 'package1@1.0.0/util1'


def test_is_artifact_identity():
    assert is_artifact_identity({'webpackageId': 'a', 'artifactId': 'b'})
    assert not is_artifact_identity({'artifactId': 'b'})
    assert not is_artifact_identity('root')
    assert not is_artifact_identity(None)
