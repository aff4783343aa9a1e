from __future__ import annotations

from photocheck.config import Country, load_country_table


class UnknownCountryError(LookupError):
    pass


def list_countries() -> list[Country]:
    return sorted(load_country_table().countries, key=lambda country: country.name)


def filter_countries(query: str | None) -> list[Country]:
    countries = list_countries()
    needle = (query or "").strip().lower()
    if not needle:
        return countries
    return [country for country in countries if needle in country.name.lower()]


def get_country(code: str) -> Country:
    wanted = (code or "").strip().upper()
    for country in load_country_table().countries:
        if country.code == wanted:
            return country
    raise UnknownCountryError(f"Unknown country code '{code}'.")
