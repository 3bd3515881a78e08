"""
Normalisation and checks for registrar inputs

Every adapter and workflow funnels user supplied names through here so
that registrars always see the same lower-case, scheme-free form.
"""

import re
from typing import Iterable, List, Optional, Tuple


class ValidationError(ValueError):
    """Input that no registrar would accept"""
    pass


MAX_FQDN_LENGTH = 253

_LABEL = r'[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?'
_FQDN = re.compile(rf'^(?:{_LABEL}\.)+[a-z]{{2,63}}$')
_SCHEME = re.compile(r'^[a-z]+://')

_MAILBOX = re.compile(r'^[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}$')

# Registries want "+<country code>.<subscriber number>"
_EPP_PHONE = re.compile(r'^\+\d{1,3}\.\d{4,14}$')
_E164 = re.compile(r'^\+[1-9]\d{6,14}$')
_PHONE_PUNCTUATION = re.compile(r'[\s\-().]+')


class DomainValidator:
    """Domain name helpers shared by the adapters"""

    @staticmethod
    def clean(domain: str) -> str:
        """'HTTPS://Example.COM./' -> 'example.com'"""
        name = _SCHEME.sub('', domain.strip().lower())
        return name.strip('/').rstrip('.')

    @classmethod
    def validate(cls, domain: str) -> str:
        """
        Clean a domain and make sure it is a registrable FQDN.

        Raises:
            ValidationError: empty, over 253 characters or a bad label
        """
        if not domain or not domain.strip():
            raise ValidationError("Domain name cannot be empty")

        name = cls.clean(domain)
        if len(name) > MAX_FQDN_LENGTH:
            raise ValidationError(f"Domain name longer than {MAX_FQDN_LENGTH} characters: {name}")
        if not _FQDN.match(name):
            raise ValidationError(
                f"Invalid domain name '{name}': use letters, digits and hyphens "
                "with at least one dot before the TLD"
            )
        return name

    @staticmethod
    def split_domain(domain: str) -> Tuple[str, str]:
        """('example', 'co.uk') for 'example.co.uk'"""
        label, _, suffix = domain.partition('.')
        return label, suffix

    @classmethod
    def extract_sld(cls, domain: str) -> str:
        return cls.split_domain(domain)[0]

    @staticmethod
    def extract_tld(domain: str) -> str:
        # Last label only, so 'co.uk' names report 'uk'
        return domain.rsplit('.', 1)[-1]


def validate_domain(domain: str) -> str:
    return DomainValidator.validate(domain)


def validate_email(email: str) -> str:
    """Lower-cased contact mailbox, or ValidationError"""
    address = (email or "").strip().lower()
    if not address:
        raise ValidationError("Email address cannot be empty")
    if not _MAILBOX.match(address):
        raise ValidationError(f"Invalid email address: {address}")
    return address


def validate_phone(phone: str) -> str:
    """
    Bring a contact phone number into registry notation.

    '+1.5551234567' passes through untouched. Anything else must be an
    international number once punctuation is removed; the country code is
    taken as one digit for NANP (+1) and two digits for everyone else.
    """
    number = (phone or "").strip()
    if not number:
        raise ValidationError("Phone number cannot be empty")
    if _EPP_PHONE.match(number):
        return number

    compact = _PHONE_PUNCTUATION.sub('', number)
    if not _E164.match(compact):
        raise ValidationError(
            f"Invalid phone number '{number}': expected international form such as +1.5551234567"
        )

    cc_digits = 1 if compact.startswith('+1') else 2
    return f"{compact[:cc_digits + 1]}.{compact[cc_digits + 1:]}"


def normalize_tld(tld: str) -> str:
    """'.COM' -> 'com'"""
    return tld.strip().lstrip('.').lower()


def parse_tld_list(value: Optional[Iterable[str]]) -> List[str]:
    """TLD selection from a comma separated env value or a CLI list"""
    if not value:
        return []
    items = value.split(',') if isinstance(value, str) else value
    return [normalize_tld(item) for item in items if item and item.strip()]
