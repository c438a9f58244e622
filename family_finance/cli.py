# family_finance/cli.py
from datetime import date, timedelta
from decimal import Decimal
import random

import click

from .extensions import db
from .models import (
    Budget, Category, Family, Goal, GoalStatus, RecurringFrequency, RecurringStatus,
    RecurringTransaction, Role, Transaction, TxnType, User, Wallet, WalletType,
)
from .services.families import create_family_for
from .services.ledger import apply_delta, signed
from .services.notifications import send_summaries
from .services.recurring import run_due
from .services.reminders import send_due_date_reminders

DEMO_PASSWORD = "Demo1234"


def register_cli(app):
    @app.cli.command("run-recurring")
    @click.option("--date", "on_date", default=None, help="Treat this YYYY-MM-DD as today.")
    @click.option("--family-id", type=int, default=None, help="Limit the run to one family.")
    def run_recurring(on_date, family_id):
        """Execute due recurring transactions (catching up missed occurrences)."""
        today = date.fromisoformat(on_date) if on_date else date.today()
        summary = run_due(today=today, family_id=family_id)
        click.echo(
            f"processed={summary['processed']} created={summary['created']} "
            f"completed={summary['completed']} failed={summary['failed']}"
        )
        for err in summary["errors"]:
            click.echo(f"  - rule={err['rule_id']}: {err['error']}")

    @app.cli.command("send-summaries")
    @click.argument("kind", type=click.Choice(["weekly", "monthly"]))
    def send_summaries_cmd(kind):
        """Email the weekly or monthly summary to opted-in families."""
        result = send_summaries(kind)
        click.echo(f"{kind}: families={result['families']} sent={result['sent']} failed={result['failed']}")

    @app.cli.command("send-reminders")
    @click.option("--days-ahead", type=int, default=7, show_default=True, help="Liabilities due within this many days.")
    def send_reminders_cmd(days_ahead):
        """Liability due-date and goal deadline reminders (in-app + email)."""
        result = send_due_date_reminders(days_ahead=days_ahead)
        click.echo(
            f"families={result['families']} liabilities={result['liabilities']} goals={result['goals']} "
            f"notifications={result['notifications']} emails={result['emails']}"
        )

    @app.cli.command("seed-demo")
    def seed_demo():
        """Dev-only: a demo family with wallets, three months of transactions, budgets, a goal and rules."""
        if db.session.query(User).filter_by(email="budi@demo.com").first():
            click.echo("Demo data already present.")
            return

        budi = User(email="budi@demo.com", name="Budi Santoso", role=Role.ADMIN)
        budi.set_password(DEMO_PASSWORD)
        db.session.add(budi)
        db.session.flush()
        family = create_family_for(budi)
        family.name = "Keluarga Budi"

        ani = User(email="ani@demo.com", name="Ani Santoso", role=Role.MEMBER, family_id=family.id)
        ani.set_password(DEMO_PASSWORD)
        db.session.add(ani)

        bca = Wallet(family_id=family.id, name="BCA - Budi", type=WalletType.BANK, balance=Decimal("0"))
        mandiri = Wallet(family_id=family.id, name="Mandiri - Ani", type=WalletType.BANK, balance=Decimal("0"))
        db.session.add_all([bca, mandiri])
        db.session.flush()

        cats = {c.name: c for c in db.session.query(Category).filter_by(family_id=family.id)}
        rng = random.Random(42)
        today = date.today()

        def add(user, wallet, cat, ttype, amount, desc, d):
            amount = Decimal(amount)
            apply_delta(wallet, signed(ttype, amount), check_funds=False)
            db.session.add(Transaction(
                family_id=family.id, user_id=user.id, wallet_id=wallet.id, category_id=cat.id,
                type=ttype, amount=amount, description=desc, date=d,
            ))

        for back in range(3):
            first = (today.replace(day=1) - timedelta(days=31 * back)).replace(day=1)
            add(budi, bca, cats["Gaji"], TxnType.INCOME, 10_000_000, "Gaji bulanan", first)
            add(budi, bca, cats["Tagihan"], TxnType.EXPENSE, 1_500_000, "Listrik & internet", first + timedelta(days=4))
            for i in range(12):
                d = first + timedelta(days=rng.randint(0, 27))
                if d > today:
                    continue
                amt = rng.randint(30, 130) * 1000
                add(ani, mandiri if i % 2 else bca, cats["Makan & Minum"], TxnType.EXPENSE, amt,
                    "Makan di restoran" if amt > 80_000 else "Jajan & snack", d)
                add(budi, bca, cats["Transport"], TxnType.EXPENSE, rng.randint(20, 80) * 1000, "Bensin", d)

        for cat, amount in (("Makan & Minum", 3_000_000), ("Transport", 1_500_000), ("Tagihan", 2_000_000)):
            db.session.add(Budget(
                family_id=family.id, category_id=cats[cat].id, created_by_id=budi.id,
                year=today.year, month=today.month, amount=Decimal(amount),
            ))

        db.session.add(Goal(
            family_id=family.id, name="Dana Darurat", target_amount=Decimal(30_000_000),
            current_amount=Decimal(5_000_000), deadline=today.replace(year=today.year + 1, day=1),
            status=GoalStatus.ACTIVE,
        ))
        next_first = (today.replace(day=28) + timedelta(days=4)).replace(day=1)
        db.session.add_all([
            RecurringTransaction(
                family_id=family.id, created_by_id=budi.id, wallet_id=bca.id, category_id=cats["Gaji"].id,
                name="Gaji Bulanan", type=TxnType.INCOME, amount=Decimal(10_000_000),
                frequency=RecurringFrequency.MONTHLY, day_of_month=1,
                start_date=next_first, next_date=next_first, status=RecurringStatus.ACTIVE,
            ),
            RecurringTransaction(
                family_id=family.id, created_by_id=budi.id, wallet_id=bca.id, category_id=cats["Tagihan"].id,
                name="Tagihan Bulanan", type=TxnType.EXPENSE, amount=Decimal(1_500_000),
                frequency=RecurringFrequency.MONTHLY, day_of_month=5,
                start_date=next_first + timedelta(days=4), next_date=next_first + timedelta(days=4),
                status=RecurringStatus.ACTIVE,
            ),
        ])
        db.session.commit()
        click.echo(f"✅ Seeded demo family '{family.name}' (login budi@demo.com / {DEMO_PASSWORD}).")

    @app.cli.command("families")
    def list_families():
        """List families with member and wallet counts."""
        for fam in db.session.query(Family).order_by(Family.id):
            wallets = db.session.query(Wallet).filter_by(family_id=fam.id).count()
            click.echo(f"{fam.id:>4}  {fam.name:<30} members={len(fam.members)} wallets={wallets}")
