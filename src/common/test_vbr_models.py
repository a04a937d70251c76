import pytest
from pydantic import ValidationError

from src.common.vbr_models import Extent, ExtentType, ScaleOutRepository, SimpleRepository


def test_extent_type_follows_raw_type():
    assert Extent(id="e1", name="Extent01", raw_type="WinLocal").type == ExtentType.WINDOWS_LOCAL
    assert Extent(id="e2", name="Extent02", raw_type="smb").type == ExtentType.NETWORK_SHARE
    assert Extent(id="e3", name="DD01", raw_type="DDBoost").type == ExtentType.UNSUPPORTED


def test_conflicting_extent_type_is_overridden():
    extent = Extent(id="e1", name="Extent01", raw_type="LinuxLocal", type=ExtentType.WINDOWS_LOCAL)

    assert extent.type == ExtentType.LINUX_LOCAL


def test_blank_extent_name_is_rejected():
    with pytest.raises(ValidationError):
        Extent(id="e1", name="  ", raw_type="WinLocal")


def test_repository_kind_tags():
    assert SimpleRepository(id="r1", name="Repo01").kind == "simple"
    assert ScaleOutRepository(id="r2", name="SOBR01").kind == "scaleout"
