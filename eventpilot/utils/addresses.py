from email.utils import getaddresses
from typing import List, Tuple


def normalize_mailbox(address) -> str:
    """Lower-case an address and drop any +tag from the local part."""
    if not address:
        return ""
    value = str(address).strip().lower()
    if "@" not in value:
        return value
    local, domain = value.split("@", 1)
    if "+" in local:
        local = local.split("+", 1)[0]
    return f"{local}@{domain}"


def parse_address_list(value) -> List[Tuple[str, str]]:
    """Parse an address header value into (email, name) pairs.

    Entries without an ``@`` are dropped. When no display name is present the
    address doubles as the name.
    """
    if not value:
        return []

    addresses = []
    for name, email in getaddresses([str(value)]):
        email = email.strip()
        if "@" not in email:
            continue
        addresses.append((email, name.strip() or email))
    return addresses


def contains_mailbox(addresses, mailbox: str) -> bool:
    target = normalize_mailbox(mailbox)
    if not target:
        return False
    return any(normalize_mailbox(email) == target for email, _ in addresses)
