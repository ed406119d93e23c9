"""
Services layer: everything a dispatch run does, independent of HTTP.

    token_minter.py        signed JWT → OAuth access token (+ cache)
    recipient_resolver.py  content id → other members' device tokens
    payloads.py            notification text, data bag, wire bodies
    senders.py             FCM v1 and legacy senders
    device_service.py      device registration upsert / removal / pruning
    dispatcher.py          the run itself
"""
