# tests/test_channels.py
# Resolución de canal: pedido > preferencia > EMAIL, con cascada a EMAIL si falta contacto.

import pytest

from app.channels import PREFERRED, ChannelUnavailableError, contact_for, resolve_channel
from app.models import ChannelEnum, Family


def _family(**kwargs) -> Family:
    return Family(name="Test", **kwargs)


def test_requested_channel_wins_over_preference():
    family = _family(email="a@example.com", phone="+34600111222", channel_preference=ChannelEnum.WHATSAPP)
    assert resolve_channel(ChannelEnum.SMS, family) == ChannelEnum.SMS


def test_preferred_uses_family_preference():
    family = _family(email="a@example.com", whatsapp_number="+34600111222", channel_preference=ChannelEnum.WHATSAPP)
    assert resolve_channel(PREFERRED, family) == ChannelEnum.WHATSAPP
    assert resolve_channel(None, family) == ChannelEnum.WHATSAPP


def test_defaults_to_email_without_preference():
    family = _family(email="a@example.com", phone="+34600111222")
    assert resolve_channel(None, family) == ChannelEnum.EMAIL


def test_falls_back_to_email_when_channel_contact_missing():
    family = _family(email="a@example.com", channel_preference=ChannelEnum.SMS)
    assert resolve_channel(None, family) == ChannelEnum.EMAIL
    assert resolve_channel("WHATSAPP", family) == ChannelEnum.EMAIL


@pytest.mark.parametrize(
    "requested, message",
    [
        (ChannelEnum.EMAIL, "Family has no email address"),
        (ChannelEnum.SMS, "Family has no phone or email address"),
        (ChannelEnum.WHATSAPP, "Family has no WhatsApp or email address"),
    ],
)
def test_error_names_both_contacts(requested, message):
    with pytest.raises(ChannelUnavailableError) as exc:
        resolve_channel(requested, _family())
    assert str(exc.value) == message


def test_blank_contact_counts_as_missing():
    family = _family(email="   ", phone="+34600111222")
    assert contact_for(family, ChannelEnum.EMAIL) is None
    with pytest.raises(ChannelUnavailableError):
        resolve_channel(ChannelEnum.EMAIL, family)
