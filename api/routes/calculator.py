from fastapi import APIRouter, Query

from api.schemas.loans import EmiQuote
from core.calculator import (
    PeriodUnit,
    calculate_installment,
    emi_frequency,
    interest_rate_display,
    parse_period_unit,
    period_label,
)

router = APIRouter(prefix="/calculator", tags=["calculator"])


@router.get("/emi", response_model=EmiQuote)
async def quote_emi(
    principal: float = Query(...),
    rate: float = Query(...),
    period: int = Query(...),
    period_unit: str = Query(PeriodUnit.MONTHS.value),
):
    """
    Installment quote for the loan form. Unknown period units are quoted in
    months; non-positive principal or period is answered with 400.
    """
    installment = calculate_installment(principal, rate, period, period_unit)
    unit = parse_period_unit(period_unit)
    return EmiQuote(
        principal=principal,
        interest_rate=rate,
        period=period,
        period_unit=unit,
        emi=installment.emi,
        total=installment.total,
        interest=installment.interest,
        period_in_months=installment.period_in_months,
        period_label=period_label(unit),
        emi_frequency=emi_frequency(unit),
        interest_rate_display=interest_rate_display(rate, unit),
    )
