# app/channels.py                                                                 # Resolución de canal de envío por familia.

# =================================================================================
# 📡 Channel Resolver
# ---------------------------------------------------------------------------------
# Canal pedido > preferencia de la familia > EMAIL. Si el canal elegido no tiene
# dato de contacto, cae a EMAIL; si tampoco hay email, error específico del canal.
# =================================================================================

from typing import Optional, Union

from app.models import ChannelEnum, Family

PREFERRED = "PREFERRED"                                                           # Pide usar la preferencia de la familia.

_CONTACT_FIELD = {                                                                # Campo de contacto que exige cada canal.
    ChannelEnum.EMAIL: "email",
    ChannelEnum.SMS: "phone",
    ChannelEnum.WHATSAPP: "whatsapp_number",
}

_NO_CONTACT_ERROR = {                                                             # Mensaje cuando ni el canal ni EMAIL sirven.
    ChannelEnum.EMAIL: "Family has no email address",
    ChannelEnum.SMS: "Family has no phone or email address",
    ChannelEnum.WHATSAPP: "Family has no WhatsApp or email address",
}


class ChannelUnavailableError(Exception):
    """La familia no tiene dato de contacto para el canal pedido ni para EMAIL."""

    def __init__(self, channel: ChannelEnum):
        self.channel = channel
        super().__init__(_NO_CONTACT_ERROR[channel])


def contact_for(family: Family, channel: ChannelEnum) -> Optional[str]:
    """Dato de contacto de la familia para el canal (o None si falta)."""
    value = getattr(family, _CONTACT_FIELD[ChannelEnum(channel)], None)
    value = (value or "").strip()                                                 # Cadenas vacías cuentan como ausentes.
    return value or None


def resolve_channel(
    requested: Union[ChannelEnum, str, None],
    family: Family,
) -> ChannelEnum:
    """Devuelve el canal efectivo o lanza ChannelUnavailableError."""
    if requested and requested != PREFERRED:                                      # Petición explícita del admin...
        chosen = ChannelEnum(requested)                                           # ...se respeta.
    elif family.channel_preference:                                               # Si no, preferencia de la familia...
        chosen = ChannelEnum(family.channel_preference)
    else:                                                                         # ...y si no hay, EMAIL.
        chosen = ChannelEnum.EMAIL

    if contact_for(family, chosen):                                               # Hay contacto para el canal elegido.
        return chosen
    if chosen != ChannelEnum.EMAIL and contact_for(family, ChannelEnum.EMAIL):    # Cascada a EMAIL.
        return ChannelEnum.EMAIL
    raise ChannelUnavailableError(chosen)                                         # Sin salida: error nombrando ambos contactos.
