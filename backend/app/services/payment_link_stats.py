"""
Payment link statistics and tracking reports.

Read-only aggregation over PaymentLink rows plus the chat formatting of the
results. Conversion rate is transactions / views * 100 (2 decimals, "0"
when there are no views).
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from app.core.tokens import token_emoji
from app.models.payment_link import PaymentLink, PaymentLinkStatus

TIMEFRAMES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "all": None,
}


def short_address(address: Optional[str]) -> str:
    if not address:
        return "Unknown"
    return f"{address[:6]}...{address[-4:]}"


def _decimal(value) -> Decimal:
    try:
        return Decimal(str(value or "0"))
    except ArithmeticError:
        return Decimal("0")


def _fmt2(value: Decimal) -> str:
    return f"{value:.2f}"


def conversion_rate(transactions: int, views: int) -> str:
    if views <= 0:
        return "0"
    return _fmt2(Decimal(transactions) / Decimal(views) * 100)


def uses_label(link: PaymentLink) -> str:
    max_label = "∞" if link.is_unlimited else str(link.max_uses)
    return f"{link.current_uses or 0}/{max_label}"


def _parse_paid_at(value) -> Optional[datetime]:
    if isinstance(value, datetime):
        paid_at = value
    else:
        try:
            paid_at = datetime.fromisoformat(str(value))
        except (TypeError, ValueError):
            return None
    if paid_at.tzinfo is None:
        paid_at = paid_at.replace(tzinfo=timezone.utc)
    return paid_at


def link_statistics(link: PaymentLink) -> dict:
    payments = list(link.payments or [])
    total_transactions = len(payments)
    total_received = _decimal(link.total_amount_received)
    views = link.view_count or 0
    average = _fmt2(total_received / total_transactions) if total_transactions else "0"
    return {
        "linkId": link.link_id,
        "title": link.title,
        "amount": link.amount,
        "token": link.token,
        "status": link.status,
        "type": link.type,
        "linkUrl": link.link_url,
        "details": link.details or {},
        "statistics": {
            "totalTransactions": total_transactions,
            "totalAmountReceived": format(total_received.normalize(), "f"),
            "currentUses": link.current_uses or 0,
            "maxUses": link.max_uses,
            "uses": uses_label(link),
            "viewCount": views,
            "conversionRate": conversion_rate(total_transactions, views),
            "averageTransactionAmount": average,
        },
        "recentTransactions": payments[-3:],
    }


def format_link_stats(link: PaymentLink) -> str:
    stats = link_statistics(link)
    numbers = stats["statistics"]
    status_emoji = "🟢" if link.status == PaymentLinkStatus.ACTIVE else "🔴"
    lines = [
        "📊 *Payment Link Statistics*",
        "",
        f"🔗 {link.title}",
        f"🆔 `{link.link_id}`",
        f"{status_emoji} Status: {link.status}",
        f"{token_emoji(link.token)} {link.amount} {link.token}",
        f"🌐 {link.link_url}",
        "",
        "📈 Statistics:",
        f"• Transactions: {numbers['totalTransactions']}",
        f"• Total Received: {numbers['totalAmountReceived']} {link.token}",
        f"• Uses: {numbers['uses']}",
        f"• Views: {numbers['viewCount']}",
        f"• Conversion: {numbers['conversionRate']}%",
        f"• Average Payment: {numbers['averageTransactionAmount']} {link.token}",
        "",
    ]
    recent = stats["recentTransactions"]
    if recent:
        lines.append("💸 Recent Payments:")
        for index, payment in enumerate(recent, start=1):
            paid_at = _parse_paid_at(payment.get("paidAt"))
            date = paid_at.strftime("%Y-%m-%d") if paid_at else "?"
            lines.append(
                f"{index}. {payment.get('amount')} {link.token} from "
                f"{short_address(payment.get('payerAddress'))} ({date})"
            )
    else:
        lines.append("📝 No transactions yet")
    return "\n".join(lines)


def all_links_overview(links: List[PaymentLink]) -> dict:
    total_transactions = sum(len(link.payments or []) for link in links)
    total_views = sum(link.view_count or 0 for link in links)
    revenue = sum((_decimal(link.total_amount_received) for link in links), Decimal("0"))
    return {
        "totalLinks": len(links),
        "activeLinks": sum(1 for link in links if link.status == PaymentLinkStatus.ACTIVE),
        "totalTransactions": total_transactions,
        "totalViews": total_views,
        "totalRevenue": _fmt2(revenue),
        "conversionRate": conversion_rate(total_transactions, total_views),
    }


def format_all_links_stats(links: List[PaymentLink]) -> str:
    """`links` must already be sorted newest first."""
    if not links:
        return (
            "📭 *No Payment Links Found*\n\n"
            "You haven't created any payment links yet.\n\n"
            "🚀 Use /payment to create your first payment link."
        )
    overview = all_links_overview(links)
    lines = [
        "📊 *Payment Links Overview*",
        "",
        f"🔗 Total Links: {overview['totalLinks']}",
        f"🟢 Active: {overview['activeLinks']}",
        f"💸 Transactions: {overview['totalTransactions']}",
        f"👁️ Views: {overview['totalViews']}",
        f"💰 Revenue: ${overview['totalRevenue']}",
        "",
        "📋 Recent Links:",
    ]
    for index, link in enumerate(links[:5], start=1):
        status_emoji = "🟢" if link.status == PaymentLinkStatus.ACTIVE else "🔴"
        lines.append(
            f"{index}. {status_emoji} {link.title} - {link.amount} {link.token} "
            f"(`{link.link_id}`, {len(link.payments or [])} tx, {uses_label(link)} uses)"
        )
    if len(links) > 5:
        lines.append(f"...and {len(links) - 5} more")
    lines.append("")
    lines.append("💡 Send /linkstats <linkId> for details on one link.")
    return "\n".join(lines)


def filter_links(links: Iterable[PaymentLink], link_id: str = None, link_name: str = None) -> List[PaymentLink]:
    links = list(links)
    if link_id:
        return [link for link in links if link.link_id == link_id]
    if link_name:
        needle = link_name.lower()
        return [link for link in links if link.title and needle in link.title.lower()]
    return links


def build_tracking_report(links: List[PaymentLink], timeframe: str = "30d", now: datetime = None) -> dict:
    """Per-link metrics and recent payments within `timeframe`."""
    if timeframe not in TIMEFRAMES:
        timeframe = "30d"
    now = now or datetime.now(timezone.utc)
    window = TIMEFRAMES[timeframe]
    start = now - window if window else None

    summaries = []
    recent = []
    total_transactions = 0
    total_amount = Decimal("0")
    total_views = 0

    for link in links:
        payments = []
        for payment in link.payments or []:
            paid_at = _parse_paid_at(payment.get("paidAt"))
            if start is None or (paid_at is not None and paid_at >= start):
                payments.append((paid_at, payment))

        link_amount = sum((_decimal(p.get("amount")) for _, p in payments), Decimal("0"))
        views = link.view_count or 0
        total_transactions += len(payments)
        total_amount += link_amount
        total_views += views

        summaries.append({
            "linkId": link.link_id,
            "title": link.title,
            "token": link.token,
            "status": link.status,
            "metrics": {
                "totalTransactions": len(payments),
                "totalAmountReceived": _fmt2(link_amount),
                "viewCount": views,
                "conversionRate": conversion_rate(len(payments), views),
            },
        })
        for paid_at, payment in payments:
            recent.append({**payment, "linkTitle": link.title, "_paidAt": paid_at})

    summaries.sort(key=lambda s: _decimal(s["metrics"]["totalAmountReceived"]), reverse=True)
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    recent.sort(key=lambda p: p["_paidAt"] or epoch, reverse=True)
    for payment in recent:
        payment.pop("_paidAt", None)

    return {
        "summary": {
            "timeframe": timeframe,
            "totalPaymentLinks": len(links),
            "totalTransactions": total_transactions,
            "totalAmountReceived": _fmt2(total_amount),
            "totalViews": total_views,
            "overallConversionRate": conversion_rate(total_transactions, total_views),
            "averageTransactionAmount": _fmt2(total_amount / total_transactions) if total_transactions else "0.00",
        },
        "paymentLinks": summaries,
        "recentTransactions": recent,
    }


def format_tracking_report(report: dict) -> str:
    summary = report["summary"]
    lines = [
        "📊 *PAYMENT ANALYTICS REPORT*",
        "",
        f"📈 Summary ({summary['timeframe'].upper()})",
        f"• Payment Links: {summary['totalPaymentLinks']}",
        f"• Transactions: {summary['totalTransactions']}",
        f"• Revenue: ${summary['totalAmountReceived']}",
        f"• Page Views: {summary['totalViews']}",
        f"• Conversion: {summary['overallConversionRate']}%",
        f"• Avg. Transaction: ${summary['averageTransactionAmount']}",
        "",
    ]
    if report["paymentLinks"]:
        lines.append("🔗 Top Payment Links:")
        for index, link in enumerate(report["paymentLinks"][:3], start=1):
            status_emoji = "🟢" if link["status"] == PaymentLinkStatus.ACTIVE else "🔴"
            metrics = link["metrics"]
            lines.append(f"{index}. {link['title']} (`{link['linkId']}`)")
            lines.append(
                f"   {status_emoji} {link['status'].upper()} {token_emoji(link['token'])} "
                f"Revenue: ${metrics['totalAmountReceived']} | Tx: {metrics['totalTransactions']} | "
                f"Views: {metrics['viewCount']} | Conv: {metrics['conversionRate']}%"
            )
        lines.append("")

    lines.append("💸 Recent Transactions:")
    if report["recentTransactions"]:
        for index, tx in enumerate(report["recentTransactions"][:3], start=1):
            lines.append(
                f"{index}. {tx['linkTitle']}: ${tx.get('amount')} from `{short_address(tx.get('payerAddress'))}`"
            )
    else:
        lines.append("No recent transactions found for the selected timeframe.")

    lines.append("")
    lines.append('💡 Try "payment link info <linkId>" or "track payments 7d".')
    return "\n".join(lines)


def format_tracking_miss(link_id: str = None, link_name: str = None, suggestions: List[str] = None) -> str:
    if link_id:
        return (
            f"❌ *Payment Link Not Found*\n\n"
            f"I couldn't find a payment link with ID \"{link_id}\".\n"
            f"Check the ID or ask for \"show all my payment links\"."
        )
    if link_name:
        text = f"🔍 *No Matches Found*\n\nI couldn't find any payment links matching \"{link_name}\".\n"
        if suggestions:
            text += "\n🎯 Your payment links:\n"
            text += "\n".join(f"{i}. {title}" for i, title in enumerate(suggestions, start=1))
        else:
            text += "\n💡 Create your first payment link with /payment"
        return text
    return format_all_links_stats([])
