"""Transactional email bodies. Each builder returns (subject, text, html)."""
from html import escape

from app.core.config import settings

_BRAND = "The Piped Peony"


def _wrap_html(inner: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<body style="margin: 0; padding: 24px; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; background: #f9fafb; color: #374151;">
  <div style="max-width: 600px; margin: 0 auto; background: #fff; border-radius: 12px; padding: 32px;">
    {inner}
    <hr style="border: none; border-top: 1px solid #eee; margin: 32px 0;">
    <p style="font-size: 12px; color: #999; margin: 0;">{_BRAND} &middot; <a href="{settings.SITE_URL}" style="color: #999;">{settings.SITE_URL}</a></p>
  </div>
</body>
</html>"""


def welcome_email(
    first_name: str,
    plan_name: str | None,
    trial_days: int = 0,
    needs_password_reset: bool = False,
) -> tuple[str, str, str]:
    account_url = f"{settings.SITE_URL}/my-account"
    reset_url = f"{settings.SITE_URL}/login"
    plan = plan_name or "The Piped Peony Academy"

    subject = "Welcome to The Piped Peony Academy"
    lines = [
        f"Hi {first_name},",
        "",
        f"Thank you for subscribing to {plan}!",
    ]
    if trial_days:
        lines.append(f"Your {trial_days}-day free trial has started. You won't be charged until it ends.")
    lines += ["", f"Your account area: {account_url}"]
    if needs_password_reset:
        lines += [
            "",
            "Your account was set up with a temporary password. Please choose your own",
            f'using "Forgot password" at {reset_url}.',
        ]
    text = "\n".join(lines)

    trial_html = (
        f'<p style="margin: 0 0 16px;">Your {trial_days}-day free trial has started. '
        "You won't be charged until it ends.</p>"
        if trial_days
        else ""
    )
    reset_html = (
        '<p style="margin: 0 0 16px; padding: 12px; background: #fff7ed; border-radius: 8px;">'
        "Your account was set up with a temporary password. "
        f'Please choose your own using "Forgot password" at '
        f'<a href="{reset_url}">{reset_url}</a>.</p>'
        if needs_password_reset
        else ""
    )
    html = _wrap_html(
        f"""<p style="font-size: 20px; margin: 0 0 16px;">Hi {escape(first_name)},</p>
    <p style="margin: 0 0 16px;">Thank you for subscribing to {escape(plan)}!</p>
    {trial_html}
    {reset_html}
    <a href="{account_url}" style="display: inline-block; background: #111; color: #fff; text-decoration: none; padding: 14px 28px; border-radius: 8px;">Go to my account</a>"""
    )
    return subject, text, html


def order_confirmation_email(name: str, order_id: str, items: list[dict], total_cents: int) -> tuple[str, str, str]:
    """items: dicts with name, quantity and amount (cents)."""
    subject = f"Your Order Confirmation - {_BRAND}"
    downloads_url = f"{settings.SITE_URL}/my-account"

    text_items = [
        f"  {item['quantity']} x {item['name']}  ${item['amount'] / 100:.2f}" for item in items
    ]
    text = "\n".join(
        [f"Hi {name or 'there'},", "", f"Thanks for your order ({order_id}).", ""]
        + text_items
        + ["", f"Total: ${total_cents / 100:.2f}", "", f"Digital downloads are in your account: {downloads_url}"]
    )

    rows = "".join(
        f"<tr><td>{escape(item['name'])}</td><td>{item['quantity']}</td>"
        f"<td style=\"text-align: right;\">${item['amount'] / 100:.2f}</td></tr>"
        for item in items
    )
    html = _wrap_html(
        f"""<p style="font-size: 20px; margin: 0 0 16px;">Hi {escape(name or 'there')},</p>
    <p style="margin: 0 0 16px;">Thanks for your order <strong>{escape(order_id)}</strong>.</p>
    <table width="100%" cellpadding="6" style="border-collapse: collapse; margin-bottom: 16px;">{rows}
      <tr><td colspan="2"><strong>Total</strong></td><td style="text-align: right;"><strong>${total_cents / 100:.2f}</strong></td></tr>
    </table>
    <p style="margin: 0;">Digital downloads are available in <a href="{downloads_url}">your account</a>.</p>"""
    )
    return subject, text, html
