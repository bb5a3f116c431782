"""One-shot user-visible messages carried in a plain cookie.

A message is read by the next request and cleared on its response.
"""
from flask import g, request

FLASH_COOKIE = 'flash'


def set_flash(response, message):
    response.set_cookie(FLASH_COOKIE, message, path='/', httponly=True,
                        secure=request.is_secure, samesite='Lax')
    return response


def _load_flash():
    g.flash = request.cookies.get(FLASH_COOKIE) or None


def _clear_flash(response):
    # Do not clobber a message set by this very request
    if g.get('flash') is not None and not _sets_flash(response):
        response.delete_cookie(FLASH_COOKIE, path='/')
    return response


def _sets_flash(response):
    return any(header.startswith(f'{FLASH_COOKIE}=')
               for header in response.headers.getlist('Set-Cookie'))


def init_flash(app):
    app.before_request(_load_flash)
    app.after_request(_clear_flash)
