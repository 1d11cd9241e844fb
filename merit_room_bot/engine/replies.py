from __future__ import annotations

from typing import Iterable

from ..store.records import UserRecord


def format_merit(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:.2f}".rstrip("0").rstrip(".")


def mention(name: str, identity_id: str) -> str:
    cleaned = (name or "").strip()
    return f"@{cleaned}" if cleaned else f"id: {identity_id}"


def help_text(challenge_word: str, threshold: float) -> str:
    return f"""⚠ !!! PRIVACY WARNING !!! ⚠
If you do not want people to have any indication of how many coins you have, use a new anonymous account to proceed.
For additional privacy use CashFusion and then move the exact required token amount to a new address. Use your wallet's Freeze feature to prevent accidentally spending the tokens.

The bot manages the VIP room. Only users who have verified their own token holdings with the required amount (merit) are allowed to speak in the VIP room. The current threshold is {format_merit(threshold)}.

To verify your merit, follow these steps:

1) Get a wallet that is able to sign messages, such as Electron Cash or https://message.fullstack.cash

2) Use the 'Sign Message' area of the wallet to sign the word '{challenge_word}'

3) Use the /verify command to verify your wallet address, like this:
  /verify <your BCH address> <the signature>

If the room admin enabled merit aging then your merit is calculated this way:
Merit = token quantity X token age (in days)
If you hold fewer tokens, it will take more time to acquire the required merit. If you hold more, it takes less time.

Available commands:

  /help or /start
    - Bring up this help message.

  /verify <BCH address> <signature>
    - Verify that you own the Bitcoin Cash address by signing the word '{challenge_word}'. The bot will track the merit associated with this address.

  /revoke <BCH address>
    - Revoke ownership of a BCH address.

  /merit
    - Query your merit.

  /list
    - List all the people in the channel that have enough merit to speak.

  /stats
    - Return bot statistics (number of verified users and the sum of their merit).
"""


def wrong_arguments(usage: str = "") -> str:
    if usage:
        return f"Wrong number of arguments. Usage: {usage}"
    return "Wrong number of arguments."


def verify_failed(who: str) -> str:
    return f"{who} your address could not be verified."


def already_claimed(owner: str) -> str:
    return f"{owner} has already claimed that address. They must first revoke it with the /revoke command."


def verify_succeeded(who: str) -> str:
    return f"{who} you have been successfully verified! You may now speak in the VIP room."


def below_threshold(who: str, merit: float, threshold: float) -> str:
    return (
        f"{who} your signature was verified, but the address only has a merit value of "
        f"{format_merit(merit)}, which does not meet the threshold of {format_merit(threshold)}."
    )


def demoted(who: str, merit: float) -> str:
    return (
        f"{who} you no longer have enough merit to speak in the room. Your merit is only "
        f"{format_merit(merit)}. Use the /verify command once your address has accrued enough merit."
    )


def deletion_notice(original_text: str) -> str:
    notice = "Your message has been deleted.\nTo start your verification process use the command '/start'."
    if original_text:
        notice += f'\n\n"{original_text}"'
    return notice


def invalid_address(address: str) -> str:
    return f"{address} is not a valid address."


def address_not_found(address: str) -> str:
    return f"A user with address {address} could not be found in the database"


def not_owner(who: str, address: str) -> str:
    return f"{who} you do not own address {address}, so you can not revoke ownership of it."


def revoked(who: str, address: str) -> str:
    return f"{who} you have successfully revoked ownership of address {address}"


def user_not_found() -> str:
    return "User not found."


def merit_score(name: str, merit: float) -> str:
    return f"User {name} has a merit score of {format_merit(merit)}"


def verified_list(records: Iterable[UserRecord]) -> str:
    lines = ["Verified users in this channel:"]
    lines.extend(record.label for record in records)
    return "\n".join(lines) + "\n"


def stats(count: int, total_merit: float) -> str:
    return f"verified users: {count}\ntotal merit: {format_merit(total_merit)}\n"
